"""Structlog logger factory for kbflash."""

import structlog


def get_struct_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger with the given name.

    Events are snake_case with key/value context, for example
    ``logger.info("flash_completed", side="left", bytes_written=4096)``.
    For exceptions, only attach the traceback when debugging:

        except OSError as e:
            exc_info = logger.isEnabledFor(logging.DEBUG)
            logger.error("flash_copy_failed", error=str(e), exc_info=exc_info)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]
