"""Example script that traces a spiral on the touch panel through the server."""
from __future__ import annotations

import math
import time

import requests

BASE_URL = "http://localhost:8000"


def build_spiral(turns: int = 3, radius: float = 180.0, steps: int = 120):
    pts = []
    for i in range(steps):
        t = i / (steps - 1)
        angle = turns * 2 * math.pi * t
        r = radius * t
        pts.append((r * math.cos(angle), r * math.sin(angle)))
    return pts


def main() -> None:
    sent = 0
    for x, y in build_spiral():
        res = requests.post(f"{BASE_URL}/api/pointer", json={"x": x, "y": y}, timeout=5)
        res.raise_for_status()
        if res.json()["sent"]:
            sent += 1
        time.sleep(0.05)
    print(f"{sent} targets sent")
    print(requests.get(f"{BASE_URL}/api/status", timeout=5).json()["last_target"])


if __name__ == "__main__":
    main()
