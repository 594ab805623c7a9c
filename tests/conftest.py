import os
from pathlib import Path

import pytest

from logpond.services.geo import GeoResolver, RangeTable, RangeTableSource
from logpond.services.ingestion import Enricher
from logpond.services.logparser import LogParser, UrlDecomposer
from logpond.services.useragent import UserAgentClassifier, load_ruleset

TESTS_DIR = Path(__file__).parent
ORIGIN = "https://ex.com"


@pytest.fixture(scope="session", autouse=True)
def baseline_settings_env():
    """Pin the env vars every settings class reads, so a local .env cannot leak in.

    Pydantic-settings precedence: init args > env vars > .env > defaults.
    Output and dataset paths are removed so each test derives or passes its own.
    """
    os.environ.update({
        "APP_NAME": "logpond",
        "APP_DEBUG": "false",
        "APP_LOG_LEVEL": "INFO",
        "INPUT_LOG_PATH": "access.log",
        "INPUT_ORIGIN": ORIGIN,
        "OUTPUT_BATCH_SIZE": "1000",
        "OUTPUT_RESUME": "true",
        "PIPELINE_WORKERS": "1",
    })
    for name in ("GEOIP_DB_PATH", "USERAGENT_RULES_PATH", "OUTPUT_DB_PATH", "OUTPUT_ERROR_PATH"):
        os.environ.pop(name, None)


@pytest.fixture(autouse=True)
def refresh_settings_cache():
    """Clear settings cache so env changes take effect per test."""
    from logpond.config.settings import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def load_valid_ipv4_log() -> list[str]:
    """Load the contents of the valid IPv4 log file."""
    return (TESTS_DIR / "valid_ipv4_log.txt").read_text(encoding="utf-8").splitlines()


@pytest.fixture
def load_valid_ipv6_log() -> list[str]:
    """Load the contents of the valid IPv6 log file."""
    return (TESTS_DIR / "valid_ipv6_log.txt").read_text(encoding="utf-8").splitlines()


@pytest.fixture
def load_invalid_logs() -> list[str]:
    """Load the contents of the invalid log file."""
    return (TESTS_DIR / "invalid_logs.txt").read_text(encoding="utf-8").splitlines()


@pytest.fixture
def ip_ranges_path() -> Path:
    return TESTS_DIR / "ip_ranges.csv"


@pytest.fixture
def log_parser() -> LogParser:
    return LogParser()


@pytest.fixture(scope="session")
def bundled_ruleset():
    return load_ruleset()


@pytest.fixture
def classifier(bundled_ruleset) -> UserAgentClassifier:
    return UserAgentClassifier(bundled_ruleset)


@pytest.fixture
def geo_resolver(ip_ranges_path: Path) -> GeoResolver:
    return GeoResolver(RangeTableSource(RangeTable.from_csv(ip_ranges_path)))


@pytest.fixture
def enricher(log_parser: LogParser, classifier: UserAgentClassifier, geo_resolver: GeoResolver) -> Enricher:
    return Enricher(log_parser, UrlDecomposer(ORIGIN), classifier, geo_resolver)
