import secrets


def generate_secret_key() -> str:
    """Generate a signing key for bearer tokens."""
    return secrets.token_urlsafe(32)


def add_secret_key_to_env(secret_key: str, filename: str = ".env"):
    """Append the key to the env file as SECRET_KEY."""
    with open(filename, "a") as f:
        f.write(f"SECRET_KEY={secret_key}\n")


if __name__ == "__main__":
    new_key = generate_secret_key()
    add_secret_key_to_env(new_key)
    print("New SECRET_KEY generated and saved to .env")
