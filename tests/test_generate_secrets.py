from generate_secrets import KEYS, generate_secrets, write_missing


def test_generates_every_key():
    values = generate_secrets()
    assert set(values) == set(KEYS)
    assert all(len(value) >= 32 for value in values.values())


def test_write_missing_keeps_existing_keys(tmp_path):
    env = tmp_path / ".env"
    env.write_text("SECRET_KEY=keep-me")

    added = write_missing(env, {"SECRET_KEY": "new", "WTF_CSRF_SECRET_KEY": "csrf"})

    assert added == ["WTF_CSRF_SECRET_KEY"]
    assert env.read_text() == "SECRET_KEY=keep-me\nWTF_CSRF_SECRET_KEY=csrf\n"


def test_write_missing_creates_file(tmp_path):
    env = tmp_path / ".env"

    added = write_missing(env, {"SECRET_KEY": "abc"})

    assert added == ["SECRET_KEY"]
    assert env.read_text() == "SECRET_KEY=abc\n"
