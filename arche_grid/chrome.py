"""
Chrome process management for the grid engine.

One Chrome process with remote debugging hosts every grid tab. The process
gets a throwaway profile unless a user_data_dir is given, and is considered
ready once its DevTools HTTP endpoint answers.

Usage:
    chrome = Chrome(headless=True).start()
    print(chrome.version()["Browser"])
    chrome.stop()
"""

import os
import platform
import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Dict, List, Optional

import psutil
import requests


CHROME_CANDIDATES = {
    "Darwin": [
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "/Applications/Chromium.app/Contents/MacOS/Chromium",
        "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
    ],
    "Windows": [
        r"%ProgramFiles%\Google\Chrome\Application\chrome.exe",
        r"%ProgramFiles(x86)%\Google\Chrome\Application\chrome.exe",
        r"%LocalAppData%\Google\Chrome\Application\chrome.exe",
        r"%ProgramFiles%\Microsoft\Edge\Application\msedge.exe",
    ],
    "Linux": [
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/snap/bin/chromium",
    ],
}

CHROME_BINARIES = ["google-chrome", "google-chrome-stable", "chromium", "chromium-browser"]


def find_chrome() -> str:
    """
    Locate a Chrome or Chromium binary.

    $CHROME_PATH wins; then binaries on PATH; then the usual install
    locations for the current OS.
    """
    override = os.environ.get("CHROME_PATH")
    if override:
        if os.path.exists(override):
            return override
        raise FileNotFoundError(f"CHROME_PATH does not exist: {override}")

    candidates = [found for found in map(shutil.which, CHROME_BINARIES) if found]
    candidates += [os.path.expandvars(p) for p in CHROME_CANDIDATES.get(platform.system(), [])]

    for path in candidates:
        if os.path.exists(path):
            return path

    raise FileNotFoundError("Chrome not found (install Chrome/Chromium or set CHROME_PATH)")


class Chrome:
    """Chrome process that hosts grid tabs."""

    DEFAULT_PORT = 9223

    # Container and CI friendly; the grid page needs no GPU
    LAUNCH_FLAGS = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-accelerated-2d-canvas",
        "--disable-gpu",
        "--no-first-run",
        "--no-default-browser-check",
        "--no-zygote",
    ]

    def __init__(self, port: int = DEFAULT_PORT, headless: bool = True,
                 user_data_dir: Optional[Path] = None, chrome_path: Optional[str] = None):
        self.port = port
        self.headless = headless
        self.user_data_dir = user_data_dir
        self.chrome_path = chrome_path or find_chrome()
        self.process: Optional[subprocess.Popen] = None
        self._temp_profile: Optional[str] = None

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def command(self, profile: Path) -> List[str]:
        """Full launch command line for a given profile directory."""
        args = [
            self.chrome_path,
            f"--remote-debugging-port={self.port}",
            "--remote-debugging-address=127.0.0.1",
            "--remote-allow-origins=*",
            f"--user-data-dir={profile}",
            *self.LAUNCH_FLAGS,
        ]
        if self.headless:
            args.append("--headless=new")
        args.append("about:blank")
        return args

    def _profile(self) -> Path:
        if self.user_data_dir is not None:
            profile = Path(self.user_data_dir)
            profile.mkdir(parents=True, exist_ok=True)
            return profile
        self._temp_profile = tempfile.mkdtemp(prefix="arche-grid-")
        return Path(self._temp_profile)

    def start(self, timeout: float = 10.0) -> "Chrome":
        """Launch Chrome and block until DevTools answers."""
        popen_kwargs = {}
        if platform.system() == "Windows":
            popen_kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            popen_kwargs["start_new_session"] = True

        try:
            self.process = subprocess.Popen(
                self.command(self._profile()),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **popen_kwargs
            )
            self._wait_ready(timeout)
        except (OSError, TimeoutError):
            self.stop()
            raise
        return self

    def _wait_ready(self, timeout: float):
        deadline = time.time() + timeout
        while time.time() < deadline:
            if not self.running:
                code = self.process.returncode if self.process else None
                raise TimeoutError(f"Chrome exited during startup (code {code})")
            try:
                self.version()
                return
            except (requests.RequestException, ValueError):
                time.sleep(0.2)
        raise TimeoutError(f"Chrome DevTools not reachable on {self.address} within {timeout}s")

    def version(self) -> Dict:
        """DevTools /json/version payload (Browser, Protocol-Version, ...)."""
        resp = requests.get(f"http://{self.address}/json/version", timeout=1)
        resp.raise_for_status()
        return resp.json()

    def stop(self):
        """Terminate Chrome and all its helper processes, then drop a temporary profile."""
        process, self.process = self.process, None
        if process is not None:
            try:
                root = psutil.Process(process.pid)
                procs = root.children(recursive=True) + [root]
            except psutil.NoSuchProcess:
                procs = []
            for proc in procs:
                try:
                    proc.terminate()
                except psutil.NoSuchProcess:
                    pass
            _, alive = psutil.wait_procs(procs, timeout=5)
            for proc in alive:
                try:
                    proc.kill()
                except psutil.NoSuchProcess:
                    pass
            try:
                process.wait(timeout=1)
            except subprocess.TimeoutExpired:
                pass

        if self._temp_profile:
            shutil.rmtree(self._temp_profile, ignore_errors=True)
            self._temp_profile = None

    def status(self) -> Dict:
        """Process status for the dashboard: pid, memory and process count."""
        if not self.running:
            return {"running": False}
        try:
            root = psutil.Process(self.process.pid)
            procs = [root] + root.children(recursive=True)
            rss = 0
            for proc in procs:
                try:
                    rss += proc.memory_info().rss
                except psutil.NoSuchProcess:
                    pass
            return {
                "running": True,
                "pid": root.pid,
                "processes": len(procs),
                "memory_mb": round(rss / (1024 * 1024), 1),
            }
        except psutil.Error:
            return {"running": True, "pid": self.process.pid}
