"""로깅 설정 모듈.

Logging configuration. Sets the root level and, when Axiom credentials are
configured, ships every record (billing events included) to the Axiom
dataset through ``axiom_py``'s logging handler.
"""

import logging

from axiom_py import Client as AxiomClient
from axiom_py.logging import AxiomHandler

from app.config import settings

_LOG_FORMAT: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# 중복 설정 방지용 핸들러 참조 — Handler installed by configure_logging, if any
_axiom_handler: AxiomHandler | None = None


def configure_logging() -> None:
    """루트 로거를 설정합니다. 여러 번 호출해도 핸들러는 한 번만 추가됩니다.

    Configure the root logger. Safe to call more than once.
    """
    global _axiom_handler

    root: logging.Logger = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL.upper())
    if not root.handlers:
        logging.basicConfig(format=_LOG_FORMAT)

    # Axiom 미설정시 콘솔 로깅만 — Console only when Axiom is not configured
    if _axiom_handler is not None or not (settings.AXIOM_API_TOKEN and settings.AXIOM_DATASET):
        return

    client: AxiomClient = AxiomClient(token=settings.AXIOM_API_TOKEN)
    _axiom_handler = AxiomHandler(client, settings.AXIOM_DATASET)
    root.addHandler(_axiom_handler)
    logging.getLogger(__name__).info("Axiom log shipping enabled", extra={"dataset": settings.AXIOM_DATASET})
