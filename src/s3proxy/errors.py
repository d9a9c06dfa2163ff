"""Error types and store error classification for s3proxy.

Store backends raise ``StoreError`` carrying the store-defined error code.
Handlers fold every failure into a ``HandlerError`` (an HTTP status plus the
underlying cause) exactly once, via ``classify_error``; downstream code only
looks at ``HandlerError.status``.
"""


class StoreError(Exception):
    """An error reported by the object store.

    Attributes:
        code: The store error code string (e.g. "NoSuchKey", "AccessDenied").
        message: Human-readable error description.
    """

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message or code


class HandlerError(Exception):
    """A failure that has already been mapped to an HTTP status.

    Attributes:
        status: The HTTP status code to send.
        cause: The underlying exception, if any.
    """

    def __init__(self, status: int, cause: BaseException | None = None) -> None:
        super().__init__(str(cause) if cause is not None else f"HTTP {status}")
        self.status = status
        self.cause = cause


# Mapping of S3 error codes to HTTP status.
# See: https://docs.aws.amazon.com/AmazonS3/latest/API/ErrorResponses.html
STORE_ERROR_STATUS: dict[str, int] = {
    "AccessDenied": 403,
    "AccountProblem": 403,
    "AllAccessDisabled": 403,
    "AmbiguousGrantByEmailAddress": 400,
    "AuthorizationHeaderMalformed": 400,
    "BadDigest": 400,
    "BucketAlreadyExists": 409,
    "BucketAlreadyOwnedByYou": 409,
    "BucketNotEmpty": 409,
    "CredentialsNotSupported": 400,
    "CrossLocationLoggingProhibited": 403,
    "EntityTooSmall": 400,
    "EntityTooLarge": 400,
    "ExpiredToken": 400,
    "IllegalLocationConstraintException": 400,
    "IllegalVersioningConfigurationException": 400,
    "IncompleteBody": 400,
    "IncorrectNumberOfFilesInPostRequest": 400,
    "InlineDataTooLarge": 400,
    "InternalError": 500,
    "InvalidAccessKeyId": 403,
    "InvalidAccessPoint": 400,
    "InvalidArgument": 400,
    "InvalidBucketName": 400,
    "InvalidBucketState": 409,
    "InvalidDigest": 400,
    "InvalidEncryptionAlgorithmError": 400,
    "InvalidLocationConstraint": 400,
    "InvalidObjectState": 403,
    "InvalidPart": 400,
    "InvalidPartOrder": 400,
    "InvalidPayer": 403,
    "InvalidPolicyDocument": 400,
    "InvalidRange": 416,
    "InvalidRequest": 400,
    "InvalidSecurity": 403,
    "InvalidSOAPRequest": 400,
    "InvalidStorageClass": 400,
    "InvalidTargetBucketForLogging": 400,
    "InvalidToken": 400,
    "InvalidURI": 400,
    "KeyTooLongError": 400,
    "MalformedACLError": 400,
    "MalformedPOSTRequest": 400,
    "MalformedXML": 400,
    "MaxMessageLengthExceeded": 400,
    "MaxPostPreDataLengthExceededError": 400,
    "MetadataTooLarge": 400,
    "MethodNotAllowed": 405,
    "MissingContentLength": 411,
    "MissingRequestBodyError": 400,
    "MissingSecurityElement": 400,
    "MissingSecurityHeader": 400,
    "NoLoggingStatusForKey": 400,
    "NoSuchBucket": 404,
    "NoSuchBucketPolicy": 404,
    "NoSuchKey": 404,
    "NoSuchLifecycleConfiguration": 404,
    "NoSuchUpload": 404,
    "NoSuchVersion": 404,
    "NotImplemented": 501,
    "NotSignedUp": 403,
    "OperationAborted": 409,
    "PermanentRedirect": 301,
    "PreconditionFailed": 412,
    "Redirect": 307,
    "RestoreAlreadyInProgress": 409,
    "RequestIsNotMultiPartContent": 400,
    "RequestTimeout": 400,
    "RequestTimeTooSkewed": 403,
    "RequestTorrentOfBucketError": 400,
    "ServerSideEncryptionConfigurationNotFoundError": 400,
    "ServiceUnavailable": 503,
    "SignatureDoesNotMatch": 403,
    "SlowDown": 503,
    "TemporaryRedirect": 307,
    "TokenRefreshRequired": 400,
    "TooManyAccessPoints": 400,
    "TooManyBuckets": 400,
    "UnexpectedContent": 400,
    "UnresolvableGrantByEmailAddress": 400,
    "UserKeyMustBeSpecified": 400,
    "NoSuchAccessPoint": 400,
    "InvalidTag": 400,
    "MalformedPolicy": 400,
    # Not in the published table, but returned in practice.
    "NotModified": 304,
    "NotFound": 404,
    "ObjectNotInActiveTierError": 404,
}

# Codes that mean "the key simply is not there".
NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "NotFound", "404"})


def status_for_code(code: str) -> int:
    """Look up the HTTP status for a store error code.

    Bodiless responses (HEAD, 304, some 412s) reach botocore without an error
    document, so their code is the bare status number; a numeric code that is
    a valid HTTP status maps to itself. Anything unrecognised is a 500.
    """
    status = STORE_ERROR_STATUS.get(code)
    if status is not None:
        return status
    if code.isdigit() and 100 <= int(code) <= 599:
        return int(code)
    return 500


def classify_error(exc: BaseException) -> HandlerError:
    """Fold any exception into a ``HandlerError``.

    Already-classified errors are returned unchanged, store errors are looked
    up in ``STORE_ERROR_STATUS`` and everything else becomes a 500.
    """
    if isinstance(exc, HandlerError):
        return exc
    if isinstance(exc, StoreError):
        return HandlerError(status_for_code(exc.code), exc)
    return HandlerError(500, exc)


def is_not_found(exc: BaseException) -> bool:
    """Return True when ``exc`` is a store error of the not-found class."""
    return isinstance(exc, StoreError) and exc.code in NOT_FOUND_CODES
