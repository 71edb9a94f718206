from urllib import parse

from imgdelivery.log import init_logging
from imgdelivery.operations import ORIGINAL, AcceptHeader, OperationSet
from imgdelivery.typing import HttpPath, Request, ViewerRequestEvent

log = init_logging(__name__)


def get_header(req: Request, name: str, default: str = '') -> str:
  if name not in req['headers'] or len(req['headers'][name]) == 0:
    return default
  return req['headers'][name][0]['value']


def normalize(path: HttpPath, qs: dict[str, list[str]], accept: AcceptHeader) -> HttpPath:
  """Rewrite a request path and its query into the canonical cache key.

  The result is ``<path>/<format,quality,width,height tokens>`` or
  ``<path>/original`` when no recognized operation survives.
  """
  if path.endswith('/'):
    path = HttpPath(path[:-1])

  if len(qs) == 0:
    return HttpPath(f'{path}/{ORIGINAL}')

  ops = OperationSet.from_querystring(qs, accept)
  return HttpPath(f'{path}/{ops.to_path_suffix()}')


def lambda_main(event: ViewerRequestEvent) -> Request:
  req = event['Records'][0]['cf']['request']
  path = req['uri']
  qstr = req['querystring']
  accept_header = get_header(req, 'accept')

  if path.rstrip('/') != '':
    req['uri'] = normalize(path, parse.parse_qs(qstr), AcceptHeader.from_str(accept_header))

  # The canonical path alone decides cache identity from here on.
  req['querystring'] = ''

  log.debug({
      'message': 'normalized',
      'path': path,
      'qstr': qstr,
      'accept_header': accept_header,
      'uri': req['uri'],
  })

  return req
