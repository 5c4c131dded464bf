from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    A configuration key a client needs, checked when the client is constructed.

    Attributes:
        env_key (str): Key suffix; the client prefixes it with "<TYPE>_<ENGINE>_"
            (e.g. "BASE_URL" becomes "LLM_OLLAMA_BASE_URL").
        val_type (str): "string", "number", "bool" or "list".
        default (str | int | float | bool | list | None): Value used when unset.
            None marks the key as required.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None
