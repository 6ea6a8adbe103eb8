import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from dotenv import dotenv_values

from .logging import get_logger
from .paths import default_history_path, default_output_dir, expand_abs, find_project_root

log = get_logger("config")

BACKENDS = ("openai", "openrouter")
DEFAULT_BACKEND = "openai"
DEFAULT_OPENAI_MODEL = "gpt-4.1-mini"
DEFAULT_OPENROUTER_MODEL = "google/gemini-2.5-flash"

DEFAULT_TERMS: Tuple[str, ...] = (
    "Cualquier imprevisto o problema surgido durante la realización de la obra se facturará aparte.",
    "Los cambios necesarios debido al estado de las superficies se presupuestarán y cobrarán por separado.",
    "El 50% del valor del presupuesto se abonará antes de iniciar la obra.",
)


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running tools from subdirectories (e.g., `src/`) still find
    repository-level config files like `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Return key/value pairs of the nearest .env without touching os.environ."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    try:
        values = dotenv_values(path)
    except (OSError, UnicodeDecodeError) as e:
        log.warning(f"Failed reading .env: {e}")
        return {}
    env = {k: v.strip() for k, v in values.items() if k and v is not None}
    log.debug(f"Loaded {len(env)} key(s) from .env at {path}")
    return env


def _lookup(env: Dict[str, str], *names: str) -> Optional[str]:
    """Environment wins over .env; first non-empty name wins."""
    for name in names:
        v = os.environ.get(name)
        if v and v.strip():
            return v.strip()
    for name in names:
        v = env.get(name)
        if v:
            return v
    return None


@dataclass(frozen=True)
class Branding:
    """Issuer details printed on every exported budget."""

    issuer_name: str = "Pinturas y Decoración"
    address_line: str = ""
    contact_line: str = ""
    tax_id_line: str = ""
    title: str = "PRESUPUESTO"
    footer: str = ""
    terms: Tuple[str, ...] = DEFAULT_TERMS


@dataclass(frozen=True)
class Settings:
    backend: str
    model: str
    api_key: Optional[str]
    base_url: Optional[str]
    line_order: str
    max_retries: int
    history_path: str
    output_dir: str
    project_root: str
    branding: Branding = field(default_factory=Branding)


def _int_setting(raw: Optional[str], *, name: str, default: int, minimum: int = 0) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        log.warning(f"{name}={raw!r} is not an integer; using {default}")
        return default
    return max(value, minimum)


def load_branding(dotenv_dir: str, env: Optional[Dict[str, str]] = None) -> Branding:
    env = env if env is not None else _read_dotenv(dotenv_dir)
    defaults = Branding()
    terms_raw = _lookup(env, "BUDGET_TERMS")
    terms = tuple(t.strip() for t in terms_raw.split("|") if t.strip()) if terms_raw else defaults.terms
    return Branding(
        issuer_name=_lookup(env, "BUDGET_ISSUER_NAME") or defaults.issuer_name,
        address_line=_lookup(env, "BUDGET_ISSUER_ADDRESS") or defaults.address_line,
        contact_line=_lookup(env, "BUDGET_ISSUER_CONTACT") or defaults.contact_line,
        tax_id_line=_lookup(env, "BUDGET_ISSUER_TAX_ID") or defaults.tax_id_line,
        title=_lookup(env, "BUDGET_TITLE") or defaults.title,
        footer=_lookup(env, "BUDGET_FOOTER") or defaults.footer,
        terms=terms,
    )


def load_settings(start_dir: Optional[str] = None) -> Settings:
    """Resolve all runtime settings from env, then the nearest .env."""
    start = start_dir or os.getcwd()
    env = _read_dotenv(start)
    root = find_project_root(start)

    backend = (_lookup(env, "BUDGET_BACKEND") or DEFAULT_BACKEND).lower()
    if backend not in BACKENDS:
        log.warning(f"Unknown BUDGET_BACKEND={backend!r}; defaulting to {DEFAULT_BACKEND!r}")
        backend = DEFAULT_BACKEND

    if backend == "openrouter":
        api_key = _lookup(env, "OPEN_ROUTER_API_KEY", "OPENROUTER_API_KEY", "open_router_api_key")
        model = _lookup(env, "BUDGET_MODEL", "OPENROUTER_MODEL") or DEFAULT_OPENROUTER_MODEL
        base_url = None
    else:
        api_key = _lookup(env, "OPENAI_API_KEY", "openai_api_key")
        model = _lookup(env, "BUDGET_MODEL") or DEFAULT_OPENAI_MODEL
        base_url = _lookup(env, "OPENAI_BASE_URL")

    if not api_key:
        log.debug(f"No API key configured for backend {backend}")

    history_raw = _lookup(env, "BUDGET_HISTORY_PATH")
    output_raw = _lookup(env, "BUDGET_OUTPUT_DIR")

    return Settings(
        backend=backend,
        model=model,
        api_key=api_key,
        base_url=base_url,
        line_order=(_lookup(env, "BUDGET_LINE_ORDER") or "source").lower(),
        max_retries=_int_setting(_lookup(env, "BUDGET_MAX_RETRIES"), name="BUDGET_MAX_RETRIES", default=0),
        history_path=expand_abs(history_raw) if history_raw else default_history_path(root),
        output_dir=expand_abs(output_raw) if output_raw else default_output_dir(root),
        project_root=root,
        branding=load_branding(start, env),
    )
