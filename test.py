#!/usr/bin/env python3
import json
import os
import re
import subprocess
import tempfile
import shutil
import sys


def main() -> int:
    repo_dir = os.path.dirname(os.path.abspath(__file__))
    input_file = os.path.join(repo_dir, "test.json")
    script = os.path.join(repo_dir, "retouch_diagram.py")

    if not os.path.isfile(input_file):
        print(f"test.json not found at {input_file}", file=sys.stderr)
        return 1
    if not os.path.isfile(script):
        print(f"retouch_diagram.py not found at {script}", file=sys.stderr)
        return 1

    work_dir = None
    try:
        work_dir = tempfile.mkdtemp(prefix="retouch-diagram-samples.")
        with open(input_file, "r", encoding="utf-8") as f:
            samples = json.load(f)

        if not samples:
            print("No samples found.", file=sys.stderr)
            return 1

        unstable = 0
        for i, sample in enumerate(samples, start=1):
            title = sample.get("title") or f"Sample {i}"
            source = sample.get("source") or ""
            safe = re.sub(r"[^A-Za-z0-9._-]+", "_", title).strip("_")
            if not safe:
                safe = f"sample_{i}"
            path = os.path.join(work_dir, f"{i:03d}_{safe}.txt")
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(source)

            print("=" * 80)
            print(f"[{i:03d}] {title}")
            print("-" * 80)
            print(source)
            print("-" * 80)
            first = subprocess.run([sys.executable, script, path], check=False,
                                   capture_output=True, text=True, encoding="utf-8")
            print(first.stdout)

            # a second pass over the output must not move anything
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(first.stdout)
            second = subprocess.run([sys.executable, script, "--check", path], check=False,
                                    capture_output=True, text=True, encoding="utf-8")
            if second.returncode != 0:
                unstable += 1
                print(f"!! [{i:03d}] second pass changed the output", file=sys.stderr)

        print("=" * 80)
        print(f"Retouched {len(samples)} samples from {os.path.basename(input_file)}")
        if unstable:
            print(f"{unstable} samples were not stable on a second pass", file=sys.stderr)
            return 1
        return 0
    finally:
        if work_dir and os.path.isdir(work_dir):
            shutil.rmtree(work_dir)


if __name__ == "__main__":
    raise SystemExit(main())
