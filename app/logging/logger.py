import logging
import sys


class Log:
    """Process-wide logging facade shared by the primary and worker processes."""

    _logger: logging.Logger = logging.getLogger("docprep")

    @classmethod
    def configure(cls, log_level: str, role: str = "primary") -> None:
        """Configure level and a stdout handler tagged with the process role.

        Safe to call again in a forked/spawned child: the handler is replaced
        so the role tag reflects the current process.
        """
        cls._logger.setLevel(log_level.upper())
        cls._logger.propagate = False
        for existing in list(cls._logger.handlers):
            cls._logger.removeHandler(existing)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter(
                f"%(asctime)s [%(levelname)s] [{role}:%(process)d] %(message)s"
            )
        )
        cls._logger.addHandler(handler)

    @classmethod
    def info(cls, message: str, **kwargs: object) -> None:
        """Log an info message."""
        cls._logger.info(message, extra=kwargs)

    @classmethod
    def error(cls, message: str, **kwargs: object) -> None:
        """Log an error message."""
        cls._logger.error(message, extra=kwargs)

    @classmethod
    def exception(cls, message: str, **kwargs: object) -> None:
        """Log an error message with the active exception's traceback."""
        cls._logger.exception(message, extra=kwargs)

    @classmethod
    def warning(cls, message: str, **kwargs: object) -> None:
        """Log a warning message."""
        cls._logger.warning(message, extra=kwargs)

    @classmethod
    def debug(cls, message: str, **kwargs: object) -> None:
        """Log a debug message."""
        cls._logger.debug(message, extra=kwargs)
