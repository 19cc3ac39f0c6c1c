from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    A single setting a client engine needs, read through HelperConfig.

    Attributes:
        env_key (str): Raw key, prefixed by the client with "<TYPE>_<ENGINE>_" (e.g. "API_KEY" -> "VECTORSTORE_MEMORY_API_KEY").
        val_type (str): One of "string", "number", "bool", "list".
        default (str | int | float | bool | list | None): Fallback value. None marks the setting as required.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None
