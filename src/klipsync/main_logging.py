"""Logging configuration for the klipsync CLI."""
import logging

# Libraries whose DEBUG output drowns klipsync's own.
NOISY_LOGGERS: tuple[str, ...] = ("asyncio",)


def configure_logging(verbose: bool) -> None:
    """Configure logging level based on verbosity setting.

    Args:
        verbose: If True, set DEBUG level for klipsync; otherwise WARNING.

    Errors, transport failures and permanent disconnects are printed to
    stderr regardless of verbosity.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        handlers=[logging.StreamHandler()],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
