from http import HTTPStatus


class ImgTransformError(Exception):
  """Base of the request-terminating errors.

  ``status`` and ``public_message`` are what the client sees. The exception's own message
  is the diagnostic and only goes to the log.
  """
  status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
  public_message: str = 'Internal server error.'


class AuthError(ImgTransformError):
  status = HTTPStatus.FORBIDDEN
  public_message = 'Request unauthorized.'


class MethodError(ImgTransformError):
  status = HTTPStatus.BAD_REQUEST
  public_message = 'Only GET method is supported.'


class FetchError(ImgTransformError):
  public_message = 'Error downloading original image.'


class TransformError(ImgTransformError):
  public_message = 'Error transforming image.'


class WriteError(ImgTransformError):
  # Never reaches the client; write-back failures are only logged.
  public_message = 'Could not upload transformed image.'
