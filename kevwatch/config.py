"""Configuration models using Pydantic.

The configuration file (YAML or JSON) names the vendor terms to watch, the
exclusion terms that veto a match, and where notifications go::

    vendors:
      - microsoft
      - cisco
    exclusions:
      - denial of service
    match_mode: substring
    email:
      smtp_server: smtp.example.com
      smtp_port: 587
      auth_type: tls
      smtp_user: alerts@example.com
      smtp_pass: $SMTP_PASSWORD
      email_from: alerts@example.com
      recipients:
        - secops@example.com
    slack:
      url: $SLACK_WEBHOOK
"""

import enum
import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .downloaders import CISA_KEV_URL
from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = Path("state/ledger.json")


class MatchMode(str, enum.Enum):
    """How a term is located inside a field.

    ``substring`` folds case before testing containment; ``case_sensitive``
    tests containment as-is.
    """

    SUBSTRING = "substring"
    CASE_SENSITIVE = "case_sensitive"


def _collect_terms(v: Any) -> frozenset[str]:
    """Collect string terms exactly as written, dropping non-strings.

    Case and surrounding spaces are kept: ``" dos "`` only matches where
    the field has spaces around ``dos``.  An empty term matches every field.
    """
    if v is None:
        return frozenset()
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, (list, tuple, set, frozenset)):
        raise ValueError("expected a list of strings")

    out: set[str] = set()
    for item in v:
        if not isinstance(item, str):
            continue
        out.add(item)
    return frozenset(out)


class MatchConfig(BaseModel):
    """The operator's matching intent for one run.

    Attributes:
        vendor_terms: A record is in scope if ANY term matches ANY field.
        exclusion_terms: A record is excluded if ANY term matches ANY
            field, regardless of vendor matches.
        match_mode: Matching strategy, see ``MatchMode``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    vendor_terms: frozenset[str] = Field(default_factory=frozenset, alias="vendors")
    exclusion_terms: frozenset[str] = Field(default_factory=frozenset, alias="exclusions")
    match_mode: MatchMode = MatchMode.SUBSTRING

    @field_validator("vendor_terms", "exclusion_terms", mode="before")
    @classmethod
    def _collect(cls, v: Any) -> frozenset[str]:
        return _collect_terms(v)


class EmailConfig(BaseModel):
    """SMTP settings for the email notifier.

    ``smtp_pass`` may be given as ``$ENV_VAR`` and is resolved when the
    provider is built.
    """

    smtp_server: str
    smtp_port: int = Field(default=25, ge=1, le=65535)
    auth_type: str = "none"  # none | tls | ssl
    smtp_user: str | None = None
    smtp_pass: str | None = None
    email_from: str
    recipients: list[str] = Field(min_length=1)
    subject_prefix: str = "[KEVWatch]"

    @field_validator("auth_type")
    @classmethod
    def _check_auth_type(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("none", "tls", "ssl"):
            raise ValueError("auth_type must be one of none, tls, ssl")
        return v

    @field_validator("recipients", mode="before")
    @classmethod
    def _split_recipients(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [r.strip() for r in v.split(",") if r.strip()]
        return v


class SlackConfig(BaseModel):
    """Slack incoming webhook; ``url`` may be ``$ENV_VAR``."""

    url: str


class AppConfig(BaseModel):
    """Validated top-level configuration.

    Attributes:
        vendors: Vendor-inclusion terms.
        exclusions: Exclusion terms.
        match_mode: Matching strategy.
        email: Optional email notifier settings.
        slack: Optional Slack notifier settings.
        feed_url: KEV feed location.
        state_file: Path of the persisted notification ledger.
    """

    vendors: frozenset[str] = Field(default_factory=frozenset)
    exclusions: frozenset[str] = Field(default_factory=frozenset)
    match_mode: MatchMode = MatchMode.SUBSTRING
    email: EmailConfig | None = None
    slack: SlackConfig | None = None
    feed_url: str = CISA_KEV_URL
    state_file: Path = DEFAULT_STATE_FILE

    @field_validator("vendors", "exclusions", mode="before")
    @classmethod
    def _collect(cls, v: Any) -> frozenset[str]:
        return _collect_terms(v)

    def match_config(self) -> MatchConfig:
        """Build the immutable ``MatchConfig`` for this run."""
        return MatchConfig(
            vendor_terms=self.vendors,
            exclusion_terms=self.exclusions,
            match_mode=self.match_mode,
        )


def _parse_document(path: Path) -> Any:
    suffix = path.suffix.lower()
    content = path.read_text(encoding="utf-8")

    if suffix == ".json":
        return json.loads(content)
    if suffix in (".yaml", ".yml"):
        return yaml.safe_load(content) or {}
    try:
        return yaml.safe_load(content) or {}
    except yaml.YAMLError:
        return json.loads(content)


def load_config(path: Path) -> AppConfig:
    """Load the configuration from a YAML or JSON file.

    A missing file is not an error: it yields the defaults, which watch
    nothing.

    Args:
        path: Path to the configuration file.

    Returns:
        Validated ``AppConfig`` instance.

    Raises:
        ConfigError: if the file cannot be read, parsed, or validated.
    """
    if not path.exists():
        logger.info("No config file at %s, using defaults", path)
        return AppConfig()

    try:
        raw = _parse_document(path)
    except (OSError, UnicodeDecodeError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e


def load_merged_config(main_path: Path, config_dir: Path | None = None) -> AppConfig:
    """Load the main config and merge terms from extra files in a directory.

    Lets different teams own their own term lists.  Only ``vendors`` and
    ``exclusions`` are taken from the extra files; everything else comes
    from the main file.  An extra file that fails to load is skipped with a
    warning.

    Args:
        main_path: Path to the main configuration file.
        config_dir: Directory with additional ``.yaml``/``.yml`` files.
            Defaults to ``kevwatch.d/`` if it exists.

    Raises:
        ConfigError: if the main file is malformed.
    """
    main = load_config(main_path)

    if config_dir is None:
        default_dir = Path("kevwatch.d")
        if default_dir.is_dir():
            config_dir = default_dir

    if config_dir is None or not config_dir.is_dir():
        return main

    vendors = set(main.vendors)
    exclusions = set(main.exclusions)
    extra_files = sorted(config_dir.glob("*.yaml")) + sorted(config_dir.glob("*.yml"))
    for extra_file in extra_files:
        try:
            extra = load_config(extra_file)
        except ConfigError as e:
            logger.warning("Skipping %s: %s", extra_file.name, e)
            continue
        vendors.update(extra.vendors)
        exclusions.update(extra.exclusions)
        logger.info(
            "Merged %s: %d vendor terms, %d exclusions", extra_file.name, len(extra.vendors), len(extra.exclusions)
        )

    return main.model_copy(update={"vendors": frozenset(vendors), "exclusions": frozenset(exclusions)})


def load_config_or_default(path: Path, config_dir: Path | None = None) -> AppConfig:
    """Load the configuration, degrading to defaults when it is malformed.

    A broken config must never crash a run; with the defaults nothing is
    in scope and the run still records every identity it sees.
    """
    try:
        return load_merged_config(path, config_dir)
    except ConfigError as e:
        logger.warning("%s; continuing with an empty configuration", e)
        return AppConfig()


def find_config() -> Path:
    """Find the configuration file, preferring YAML over JSON.

    Returns:
        Path of the first existing config file, or ``kevwatch.yaml``.
    """
    for name in ("kevwatch.yaml", "kevwatch.yml", "kevwatch.json"):
        if Path(name).exists():
            return Path(name)
    return Path("kevwatch.yaml")
