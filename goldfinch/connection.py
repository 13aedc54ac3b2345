import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from goldfinch.exceptions import EnvNotFoundError, MissingDBUrlError

logger = logging.getLogger("Goldfinch")

DEFAULT_COMMAND_TIMEOUT = 30
DB_URL_ENV = "GOLDFINCH_DB_URL"


@dataclass
class DBConnection:
    """Database connection configuration."""

    url: str
    echo: bool = False
    engine_options: dict[str, Any] = field(default_factory=dict)

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    def get_engine(self) -> Engine:
        """Create a SQLAlchemy engine using the connection configuration."""
        options = dict(self.engine_options)
        if self.is_sqlite:
            connect_args = options.setdefault("connect_args", {})
            # Async commits run on a worker thread.
            connect_args.setdefault("check_same_thread", False)
            connect_args.setdefault("timeout", DEFAULT_COMMAND_TIMEOUT)
        else:
            options.setdefault("pool_pre_ping", True)
        logger.info(f"Creating engine for '{self.redacted_url}'")
        return create_engine(self.url, echo=self.echo, **options)

    def get_session_factory(self) -> sessionmaker[Session]:
        """Create a SQLAlchemy session factory using the connection configuration."""
        return sessionmaker(bind=self.get_engine())

    def get_scoped_session_factory(self) -> scoped_session[Session]:
        """Create a thread-safe scoped SQLAlchemy session factory."""
        return scoped_session(self.get_session_factory())

    @property
    def redacted_url(self) -> str:
        """The URL with any password masked, safe for logging."""
        from sqlalchemy.engine import make_url

        return make_url(self.url).render_as_string(hide_password=True)

    @classmethod
    def from_config(cls, config_path: str | Path) -> "DBConnection":
        """Load database connection configuration from a YAML file.

        The file is ``db.yaml`` inside ``config_path`` when a directory is given.
        The ``url`` key is required; ``echo`` and ``engine_options`` are optional.
        The ``GOLDFINCH_DB_URL`` environment variable overrides the file's ``url``.

        Args:
            config_path: Path to the YAML file or to a directory containing ``db.yaml``.

        Returns:
            DBConnection instance with loaded configuration.
        """
        from omegaconf import DictConfig, OmegaConf

        resolved_path = Path(config_path)
        if resolved_path.is_dir():
            resolved_path = resolved_path / "db.yaml"

        cfg = OmegaConf.load(resolved_path)
        if not isinstance(cfg, DictConfig):
            raise TypeError("db.yaml must be a YAML mapping.")  # noqa: TRY003

        url = os.environ.get(DB_URL_ENV, cfg.get("url"))
        if url is None:
            raise MissingDBUrlError

        engine_options = cfg.get("engine_options")
        return cls(
            url=url,
            echo=bool(cfg.get("echo", False)),
            engine_options=OmegaConf.to_container(engine_options, resolve=True) if engine_options else {},
        )

    @classmethod
    def from_env(cls) -> "DBConnection":
        """Load database connection configuration from the ``GOLDFINCH_DB_URL`` environment variable."""
        url = os.getenv(DB_URL_ENV)
        if not url:
            raise EnvNotFoundError(DB_URL_ENV)
        return cls(url=url)
