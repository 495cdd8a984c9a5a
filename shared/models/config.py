from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    Describes one environment setting a client needs before it can boot.

    Attributes:
        env_key (str): The raw key, without the "{CLIENT_TYPE}_{ENGINE}_" prefix (e.g. "API_KEY").
        val_type (str): How the value is parsed: "string", "number", "bool" or "list".
        default (str | int | float | bool | list | None): Value used when the variable is unset. None marks the setting as required.
    """

    env_key: str
    val_type: str = "string"
    default: str | int | float | bool | list | None = None
