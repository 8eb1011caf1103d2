import sentry_sdk

from brandflow.settings import settings


def init_sentry():
    if settings.SENTRY_DSN:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            traces_sample_rate=0.01,
            send_default_pii=False,
            environment=settings.SENTRY_ENVIRONMENT,
        )


def report_exception(exc: BaseException, error_code: str) -> None:
    """Send an unexpected error to Sentry tagged with the code shown to the client."""
    if not settings.SENTRY_DSN:
        return

    with sentry_sdk.new_scope() as scope:
        scope.set_tag("error_code", error_code)
        sentry_sdk.capture_exception(exc)
