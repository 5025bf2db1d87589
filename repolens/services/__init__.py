"""Business logic services.

Note: LLMGateway is NOT imported at module level so that importing the
services package never pulls in LiteLLM.
Import directly: from repolens.services.llm_gateway import LLMGateway, get_llm_gateway
"""

__all__ = [
    "LLMGateway",
    "get_llm_gateway",
]


def __getattr__(name: str):
    """Lazy import of the gateway."""
    if name in ("LLMGateway", "get_llm_gateway"):
        from repolens.services.llm_gateway import LLMGateway, get_llm_gateway
        return LLMGateway if name == "LLMGateway" else get_llm_gateway
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
