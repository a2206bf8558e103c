from dataclasses import dataclass


@dataclass(frozen=True)
class SessionContext:
    """
    Identity supplied by the authentication layer.

    local_mode selects on-device storage instead of the remote database.
    """
    user_id: str
    local_mode: bool = False

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("user_id cannot be empty")
