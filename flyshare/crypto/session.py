import hashlib
import secrets

WORDS = (
    "amber", "birch", "cedar", "delta", "ember", "fjord", "glade", "harbor",
    "iris", "juniper", "kestrel", "lagoon", "meadow", "nimbus", "orchid",
    "pebble", "quartz", "raven", "sierra", "tundra", "umber", "valley",
    "willow", "yarrow", "zephyr", "falcon", "comet", "marble", "copper",
    "lantern", "river", "summit",
)


def derive_session_key(password: str) -> bytes:
    """Both peers derive the same 256-bit AES key from the shared password."""
    return hashlib.sha256(password.encode("utf-8")).digest()


def generate_password(words: int = 3) -> str:
    return "-".join(secrets.choice(WORDS) for _ in range(words))
