import logging

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with a single console handler."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if any(getattr(h, "_kas_handler", False) for h in root.handlers):
        return
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    console._kas_handler = True  # type: ignore[attr-defined]
    root.addHandler(console)
