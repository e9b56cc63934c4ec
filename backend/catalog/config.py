"""Runtime switches for the catalog, read from the environment on every call."""

import os


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def testing() -> bool:
    return os.getenv("TESTING") == "1"


def search_enabled() -> bool:
    return _flag("SEARCH_ENABLED", True)


def external_search_enabled() -> bool:
    return _flag("EXTERNAL_SEARCH_ENABLED", False)


def faceted_search_enabled() -> bool:
    return _flag("FACETED_SEARCH_ENABLED", True)


def programmes_enabled() -> bool:
    return _flag("PROGRAMMES_ENABLED", True)


def allow_user_programme_creation() -> bool:
    return _flag("ALLOW_USER_PROGRAMME_CREATION", True)


def elasticsearch_url() -> str | None:
    return os.getenv("ELASTICSEARCH_URL") or None


def search_index_prefix() -> str:
    return os.getenv("SEARCH_INDEX_PREFIX", "catalog_")


def site_base_host() -> str:
    return os.getenv("SITE_BASE_HOST", "http://localhost:8000")


def api_version() -> str:
    return os.getenv("API_VERSION", "0.3")


def secret_key() -> str:
    return os.getenv("SECRET_KEY", "change-me")


def access_token_expire_minutes() -> int:
    return int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))


def crossref_email() -> str:
    return os.getenv("CROSSREF_EMAIL", "catalog@example.com")


def doi_prefix() -> str:
    return os.getenv("DOI_PREFIX", "10.5072")


def doi_suffix() -> str:
    return os.getenv("DOI_SUFFIX", "catalog")
