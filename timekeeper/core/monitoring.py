import sentry_sdk

from timekeeper.core.config import settings


def configure_error_monitoring() -> None:
    if settings.sentry_dsn:
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.2)


def report_exception(exc: BaseException) -> None:
    """Forward a handled exception to Sentry when monitoring is enabled."""
    if settings.sentry_dsn:
        sentry_sdk.capture_exception(exc)
