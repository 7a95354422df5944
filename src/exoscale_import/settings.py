"""Template import configuration settings.

ImportSettings is the single configuration object accepted by the
post-processor. It is intentionally a plain dataclass (not env-coupled) so
tests can inject config without touching os.environ.

Security invariants:
  - The API key and secret are never included in ``str()`` or ``repr()``.
  - Settings are immutable for the duration of one import.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import SettingsValidationError

BOOT_MODES = frozenset({'legacy', 'uefi'})

_TRUE_VALUES = frozenset({'1', 'true', 'yes', 'on'})


@dataclass(frozen=True, slots=True)
class ImportSettings:
    """Configuration for one template import.

    Required: api_key, api_secret, template_zone, image_bucket,
    template_name. Everything else has a working default.
    """

    # ── Credentials ────────────────────────────────────────────────
    api_key: str = ''
    """Exoscale API key, used for both the compute API and SOS."""

    api_secret: str = ''
    """Exoscale API secret. Never log this."""

    # ── Endpoints ──────────────────────────────────────────────────
    api_environment: str = 'api'
    """Compute API environment prefix (``api`` for production)."""

    template_zone: str = ''
    """Zone the template is registered in (e.g. ``ch-gva-2``)."""

    sos_endpoint: str = ''
    """SOS endpoint URL. Derived from the zone when empty."""

    image_bucket: str = ''
    """Bucket receiving the temporary image upload."""

    # ── Template ───────────────────────────────────────────────────
    template_name: str = ''
    template_description: str = ''
    template_username: str = ''
    """Default user account baked into the image, if any."""

    template_boot_mode: str = 'legacy'
    template_disable_password: bool = False
    template_disable_sshkey: bool = False
    template_build: str = ''
    template_version: str = ''
    template_maintainer: str = ''

    # ── Behaviour ──────────────────────────────────────────────────
    skip_clean: bool = False
    """Keep the uploaded image in SOS after a successful registration."""

    api_timeout_seconds: float = 1800.0
    """Deadline for template registration to complete."""

    poll_interval_seconds: float = 10.0
    presign_expiry_seconds: int = 3600

    def __repr__(self) -> str:
        return (
            'ImportSettings('
            'api_key=<redacted>, '
            'api_secret=<redacted>, '
            f'api_environment={self.api_environment!r}, '
            f'template_zone={self.template_zone!r}, '
            f'sos_endpoint={self.resolved_sos_endpoint!r}, '
            f'image_bucket={self.image_bucket!r}, '
            f'template_name={self.template_name!r}, '
            f'skip_clean={self.skip_clean!r})'
        )

    def __str__(self) -> str:
        return self.__repr__()

    @property
    def resolved_sos_endpoint(self) -> str:
        if self.sos_endpoint:
            return self.sos_endpoint.rstrip('/')
        return f'https://sos-{self.template_zone}.exo.io'

    @property
    def compute_endpoint(self) -> str:
        return f'https://{self.api_environment}-{self.template_zone}.exoscale.com/v2'

    @property
    def secrets(self) -> tuple[str, ...]:
        """Values that must never appear in log output."""
        return tuple(s for s in (self.api_key, self.api_secret) if s)

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        for name in ('api_key', 'api_secret', 'template_zone', 'image_bucket', 'template_name'):
            if not getattr(self, name):
                errors.append(f'{name} is required')
        if self.template_boot_mode not in BOOT_MODES:
            errors.append(
                f'template_boot_mode must be one of {sorted(BOOT_MODES)}, '
                f'got {self.template_boot_mode!r}'
            )
        if self.api_timeout_seconds <= 0:
            errors.append('api_timeout_seconds must be > 0')
        if self.poll_interval_seconds <= 0:
            errors.append('poll_interval_seconds must be > 0')
        if self.presign_expiry_seconds <= 0:
            errors.append('presign_expiry_seconds must be > 0')
        return errors

    def require_valid(self) -> None:
        """Raise :class:`SettingsValidationError` if :meth:`validate` reports problems."""
        errors = self.validate()
        if errors:
            raise SettingsValidationError(errors)

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ImportSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct ImportSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        def _flag(name: str) -> bool:
            return env.get(name, '').strip().lower() in _TRUE_VALUES

        return cls(
            api_key=env.get('EXOSCALE_API_KEY', '').strip(),
            api_secret=env.get('EXOSCALE_API_SECRET', '').strip(),
            api_environment=env.get('EXOSCALE_API_ENVIRONMENT', '').strip() or 'api',
            template_zone=env.get('EXOSCALE_TEMPLATE_ZONE', '').strip(),
            sos_endpoint=env.get('EXOSCALE_SOS_ENDPOINT', '').strip(),
            image_bucket=env.get('EXOSCALE_IMAGE_BUCKET', '').strip(),
            template_name=env.get('EXOSCALE_TEMPLATE_NAME', '').strip(),
            template_description=env.get('EXOSCALE_TEMPLATE_DESCRIPTION', ''),
            template_username=env.get('EXOSCALE_TEMPLATE_USERNAME', '').strip(),
            template_boot_mode=env.get('EXOSCALE_TEMPLATE_BOOT_MODE', '').strip() or 'legacy',
            template_disable_password=_flag('EXOSCALE_TEMPLATE_DISABLE_PASSWORD'),
            template_disable_sshkey=_flag('EXOSCALE_TEMPLATE_DISABLE_SSHKEY'),
            template_build=env.get('EXOSCALE_TEMPLATE_BUILD', '').strip(),
            template_version=env.get('EXOSCALE_TEMPLATE_VERSION', '').strip(),
            template_maintainer=env.get('EXOSCALE_TEMPLATE_MAINTAINER', '').strip(),
            skip_clean=_flag('EXOSCALE_SKIP_CLEAN'),
            api_timeout_seconds=float(env.get('EXOSCALE_API_TIMEOUT', '') or 1800),
            poll_interval_seconds=float(env.get('EXOSCALE_POLL_INTERVAL', '') or 10),
            presign_expiry_seconds=int(env.get('EXOSCALE_PRESIGN_EXPIRY', '') or 3600),
        )
