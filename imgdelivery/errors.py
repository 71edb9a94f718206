class BadRequest(Exception):
  """Wrong method or an empty source path."""


class OriginUnavailable(Exception):
  """Neither the primary store nor an allowed remote origin produced the source."""


class TransformFailure(Exception):
  """The codec failed to decode, transform or encode an image."""


class ConfigError(Exception):
  pass
