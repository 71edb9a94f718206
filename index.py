from aws_lambda_powertools.utilities.typing import LambdaContext

from imgdelivery.originresponse import index as originresponse
from imgdelivery.transform import index as transform
from imgdelivery.typing import (
    FunctionUrlEvent,
    FunctionUrlResponse,
    OriginResponseEvent,
    Request,
    Response,
    ViewerRequestEvent
)
from imgdelivery.urlrewrite import index as urlrewrite


def url_rewrite_lambda_handler(
    event: ViewerRequestEvent,
    _: LambdaContext,
) -> Request:
  return urlrewrite.lambda_main(event)


def image_processing_lambda_handler(
    event: FunctionUrlEvent,
    _: LambdaContext,
) -> FunctionUrlResponse:
  return transform.lambda_main(event)


def origin_response_lambda_handler(
    event: OriginResponseEvent,
    _: LambdaContext,
) -> Response:
  cf = event['Records'][0]['cf']
  return originresponse.lambda_main(cf['request'], cf['response'])
