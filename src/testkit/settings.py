"""Runner configuration.

Settings are read from `TESTKIT_*` environment variables and from a
`.env` file in the working directory. Command-line options override
them field by field.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from testkit.models import SettingsModel

type LogLevel = Literal['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG']


class RunnerSettings(SettingsModel):
    """Global settings for the execution engine and invocation driver."""

    model_config = SettingsConfigDict(
        env_prefix='TESTKIT_',
        env_file='.env',
        env_file_encoding='utf-8',
    )

    timeout: float = Field(
        default=30.0,
        gt=0,
        title='Request timeout',
        description='Default per-request timeout in seconds.',
    )

    concurrency: int = Field(
        default=1,
        ge=1,
        title='File concurrency',
        description=(
            'Maximum number of test documents executed at the same time '
            'in directory-scan mode. `1` runs documents sequentially.'
        ),
    )

    fail_fast: bool = Field(
        default=False,
        title='Stop on assertion failure',
        description=(
            'If true, the first failing assertion stops the remaining '
            'steps of the document.'
        ),
    )

    verify_tls: bool = Field(
        default=True,
        title='Verify TLS certificates',
    )

    follow_redirects: bool = Field(
        default=False,
        title='Follow HTTP redirects',
    )

    log_level: LogLevel = Field(
        default='INFO',
        title='Log level',
    )

    root: Path = Field(
        default=Path('.'),
        title='Scan root',
        description='Directory scanned for test documents.',
    )
