"""Configuration classes for Goldfinch.

This module provides the repository configuration applied to a session when a
repository is constructed, plus the logging setup shared by scripts and tests.
"""

import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any


class LoadingStrategy(Enum):
    """How relationships are loaded for entities returned by a repository."""

    LAZY = "lazy"
    EAGER = "eager"


@dataclass(frozen=True)
class RepositoryConfiguration:
    """Session behavior toggles fixed for the lifetime of a repository.

    Attributes:
        auto_detect_changes_enabled: Flush pending changes automatically before queries.
        lazy_loading_enabled: Load relationships on first access instead of with the parent row.
        proxy_creation_enabled: Expire instances on commit so they reload from the store on next access.
        use_database_null_semantics: Compare ``None`` criteria with the store's ``=`` operator,
            which never matches NULL, instead of ``IS NOT DISTINCT FROM``.
        validate_on_save_enabled: Validate pending and dirty entities before every flush.
    """

    auto_detect_changes_enabled: bool = True
    lazy_loading_enabled: bool = True
    proxy_creation_enabled: bool = True
    use_database_null_semantics: bool = False
    validate_on_save_enabled: bool = True

    @property
    def loading_strategy(self) -> LoadingStrategy:
        return LoadingStrategy.LAZY if self.lazy_loading_enabled else LoadingStrategy.EAGER

    @classmethod
    def from_flags(
        cls,
        disable_change_tracking: bool = False,
        disable_lazy_loading: bool = False,
        disable_proxy_creation: bool = False,
        use_database_null_semantics: bool = False,
        disable_validate_on_save: bool = False,
    ) -> "RepositoryConfiguration":
        """Build a configuration from the repository constructor flags.

        Example:
            >>> RepositoryConfiguration.from_flags(disable_lazy_loading=True).lazy_loading_enabled
            False
        """
        return cls(
            auto_detect_changes_enabled=not disable_change_tracking,
            lazy_loading_enabled=not disable_lazy_loading,
            proxy_creation_enabled=not disable_proxy_creation,
            use_database_null_semantics=use_database_null_semantics,
            validate_on_save_enabled=not disable_validate_on_save,
        )

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | str | Path) -> "RepositoryConfiguration":
        """Load a configuration from a mapping or a YAML file.

        A YAML file may either hold the toggles at top level or under a
        ``repository`` key. Unknown keys are rejected.

        Args:
            config: A mapping of toggle names to booleans, or a path to a YAML file.

        Returns:
            RepositoryConfiguration instance with the loaded toggles.
        """
        from omegaconf import DictConfig, OmegaConf

        if isinstance(config, (str, Path)):
            cfg = OmegaConf.load(config)
            if not isinstance(cfg, DictConfig):
                raise TypeError("Repository configuration must be a YAML mapping.")  # noqa: TRY003
            values = OmegaConf.to_container(cfg.get("repository", cfg), resolve=True)
        else:
            values = dict(config.get("repository", config))

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown repository configuration keys: {', '.join(unknown)}")  # noqa: TRY003
        return cls(**{key: bool(value) for key, value in values.items()})


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for scripts using Goldfinch."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
