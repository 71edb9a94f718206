from imgdelivery.log import init_logging
from imgdelivery.typing import Header, Request, Response

STORED_CACHE_CONTROL = 'x-amz-meta-cache-control'
ERROR_MAX_AGE = 'x-env-error-max-age'

log = init_logging(__name__)


def get_header(headers: dict[str, list[Header]], name: str, default: str) -> str:
  if name not in headers or len(headers[name]) == 0:
    return default

  if headers[name][0]['value'] == '':
    return default

  return headers[name][0]['value']


def new_cache_control(req: Request, res: Response) -> str:
  if 400 <= int(res['status']) < 600:
    try:
      error_max_age = int(get_header(req['headers'], ERROR_MAX_AGE, '0'))
    except ValueError:
      log.warning({
          'message': 'invalid error max-age',
          'value': get_header(req['headers'], ERROR_MAX_AGE, ''),
      })
      error_max_age = 0
    return f'public, max-age={error_max_age}'

  # Variants read back from the transformed bucket carry their lifetime as metadata.
  return get_header(
      res['headers'], STORED_CACHE_CONTROL, get_header(res['headers'], 'cache-control', ''))


def lambda_main(req: Request, res: Response) -> Response:
  cache_control = new_cache_control(req, res)
  path = req['uri'][1:]
  log.debug({
      'message': 'new cache-control',
      'cache-control': cache_control,
      'status': res['status'],
      'path': path,
  })

  if cache_control != '':
    res['headers']['cache-control'] = [{'key': 'Cache-Control', 'value': cache_control}]
  res['headers'].pop(STORED_CACHE_CONTROL, None)
  res['headers']['vary'] = [{'key': 'Vary', 'value': 'accept'}]
  return res
