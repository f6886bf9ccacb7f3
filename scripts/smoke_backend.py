#!/usr/bin/env python3
"""
Smoke test against a running backend.

Flow:
- health
- login (cookie-based; registers first when SMOKE_REGISTER=true)
- upload a small file to the budgets bucket and fetch it back
- create a budget record with a file, download it, delete the record
- delete the standalone upload

Usage:
  SMOKE_BACKEND_URL="http://localhost:8000" SMOKE_EMAIL=... SMOKE_PASSWORD=... python3 scripts/smoke_backend.py
"""

from __future__ import annotations

import os
import sys
import time

import httpx


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _fail(step: str, r: httpx.Response, code: int) -> int:
    print(f"FAIL {step}: {r.status_code} {r.text[:500]}")
    return code


def main() -> int:
    base = os.getenv("SMOKE_BACKEND_URL", "http://localhost:8000").rstrip("/")
    run_id = str(int(time.time()))
    email = os.getenv("SMOKE_EMAIL", f"smoke-{run_id}@finance.test")
    password = os.getenv("SMOKE_PASSWORD", f"SmokePass-{run_id}!")
    payload = f"smoke {run_id}\n".encode("utf-8")
    file_name = f"smoke-{run_id}.txt"

    print(f"[{_now_iso()}] smoke start")
    print(f"base: {base}")
    print(f"user: {email}")

    with httpx.Client(base_url=base, timeout=60, follow_redirects=True) as c:
        h = c.get("/health")
        if h.status_code != 200:
            return _fail("health", h, 2)
        print("OK health")

        if os.getenv("SMOKE_REGISTER", "").lower() in {"1", "true", "yes"}:
            reg = c.post("/auth/register", json={"email": email, "password": password, "name": "Smoke"})
            if reg.status_code != 200:
                return _fail("register", reg, 3)
            print("OK register")

        login = c.post("/auth/login", json={"email": email, "password": password})
        if login.status_code != 200:
            return _fail("login", login, 4)
        print(f"OK login (role={login.json()['user']['role']})")

        up = c.post("/api/upload", data={"bucket": "budgets"}, files={"file": (file_name, payload, "text/plain")})
        if up.status_code != 200:
            return _fail("upload", up, 5)
        stored = up.json()
        where = "github" if stored.get("githubSha") else "local"
        print(f"OK upload -> {where}: {stored['fileUrl'][:120]}")

        # Raw GitHub URLs may lag a few seconds behind the commit
        if where == "local":
            got = c.get(stored["fileUrl"])
            if got.status_code != 200 or got.content != payload:
                return _fail("fetch upload", got, 6)
            print("OK fetch upload")

        rec = c.post(
            "/budgets",
            data={"financial_year": "smoke", "description": f"Smoke budget {run_id}"},
            files={"file": (file_name, payload, "text/plain")},
        )
        if rec.status_code != 200:
            return _fail("budget create", rec, 7)
        budget = rec.json()
        print(f"OK budget create (id={budget['id']}, backend={budget.get('file_backend')})")

        dl = c.get(f"/budgets/{budget['id']}/file")
        if dl.status_code != 200:
            return _fail("budget file", dl, 8)
        print("OK budget file")

        rm = c.delete(f"/budgets/{budget['id']}")
        if rm.status_code != 200 or not rm.json().get("ok"):
            return _fail("budget delete", rm, 9)
        print("OK budget delete")

        params = {"fileUrl": stored["fileUrl"]}
        if stored.get("githubSha"):
            params.update({"filePath": stored["filePath"], "sha": stored["githubSha"]})
        d = c.delete("/api/upload", params=params)
        if d.status_code != 200:
            return _fail("upload delete", d, 10)
        print("OK upload delete")

    print(f"[{_now_iso()}] smoke PASS")
    return 0


if __name__ == "__main__":
    sys.exit(main())
