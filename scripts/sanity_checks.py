import os
import sys

import requests

BASE_URL = os.getenv("MKTOPS_API_BASE_URL", "http://127.0.0.1:8000/api")


def check(endpoint: str, headers: dict | None = None) -> bool:
    url = f"{BASE_URL}{endpoint}"
    try:
        res = requests.get(url, headers=headers or {}, timeout=10)
    except requests.RequestException as exc:
        print(f"FAIL {endpoint}: request error {exc}")
        return False
    if res.status_code != 200:
        print(f"FAIL {endpoint}: HTTP {res.status_code} {res.text[:200]}")
        return False
    print(f"OK   {endpoint}")
    return True


def login() -> dict | None:
    email = os.getenv("MKTOPS_CHECK_EMAIL")
    password = os.getenv("MKTOPS_CHECK_PASSWORD")
    if not email or not password:
        return None
    res = requests.post(f"{BASE_URL}/auth/login", json={"usuario": email, "senha": password}, timeout=10)
    if res.status_code != 200:
        print(f"FAIL /auth/login: HTTP {res.status_code}")
        return None
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


ok = check("/health")
headers = login()
if headers:
    ok = check("/me", headers) and ok
    ok = check("/statuses", headers) and ok
    ok = check("/demands?page_size=1", headers) and ok

sys.exit(0 if ok else 1)
