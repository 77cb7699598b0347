import secrets, string
# No O/0 or I/1
ALPHABET = "".join(c for c in string.ascii_uppercase + string.digits if c not in "O0I1")

def generate_code(length: int = 6) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))

def normalize_code(code: str) -> str:
    return (code or "").strip().upper()
