"""pagemind rich error messages: what went wrong, and the exact fix.

Usage:
    from pagemind.cli.errors import err_no_db
    console.print(err_no_db(str(db)))
    raise typer.Exit(1)
"""

from __future__ import annotations

_ENV_MAP = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_API_KEY",
}


def err_no_api_key(model: str) -> str:
    """No API key for the provider of *model*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _ENV_MAP.get(provider, f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}' (model '{model}').\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".pagemind.db") -> str:
    return (
        f"[red]Error:[/] No index found at '{db_path}'.\n"
        "  Run:  pagemind sync"
    )


def err_no_provider_url() -> str:
    return (
        "[red]Error:[/] No content provider configured.\n"
        "  Add to pagemind.yaml:\n"
        "    provider:\n"
        "      base_url: https://workspace.example.com/api/v1\n"
        "  or:   export PAGEMIND_PROVIDER_URL=https://..."
    )


def err_provider_auth(detail: str) -> str:
    return (
        f"[red]Error:[/] The content provider rejected our credentials: {detail}\n"
        "  Set a valid token:  export PAGEMIND_PROVIDER_TOKEN=<token>"
    )


def err_config(detail: str) -> str:
    return f"[red]Config error:[/] {detail}"


def warn_degraded(sources: list[str]) -> str:
    """Answer produced without some sources."""
    return (
        f"[yellow]⚠[/] Answered without {', '.join(sources)} (lookup failed; see log).\n"
        "  Run:  pagemind status  to check the index."
    )
