"""
Driver backed by the `adb` command line tool.

Input injection goes through `adb shell input ...` with every model-supplied
argument quoted for the device shell; screenshots go through
`adb exec-out screencap -p` and the UI tree through `uiautomator dump`.
Action methods report failures as DriverResult; only capture_screen raises,
because there is no screenshot to return.
"""

from __future__ import annotations

import difflib
import logging
import os
import re
import shlex
import subprocess
import unicodedata
from typing import Callable, Dict, List, Optional

from PIL import Image

from screen_agent.contracts.errors import DriverActionFailure
from screen_agent.executor.driver import DriverResult
from screen_agent.vision.screenshot import decode_png
from screen_agent.vision.ui_dump import RawNode, parse_ui_dump

logger = logging.getLogger(__name__)

KEYCODE_HOME = 3
KEYCODE_BACK = 4
KEYCODE_ENTER = 66
DEFAULT_TIMEOUT = 20.0
UI_DUMP_PATH = "/sdcard/screen_agent_ui.xml"

# Common spellings mapped to the label used in KNOWN_PACKAGES.
APP_ALIASES: Dict[str, str] = {
    "b站": "哔哩哔哩",
    "bilibili": "哔哩哔哩",
    "bili": "哔哩哔哩",
    "wechat": "微信",
    "weixin": "微信",
    "alipay": "支付宝",
    "zhifubao": "支付宝",
    "tiktok": "抖音",
    "douyin": "抖音",
    "taobao": "淘宝",
    "jd": "京东",
    "jingdong": "京东",
    "腾讯qq": "QQ",
    "qq": "QQ",
    "chrome": "Chrome",
    "谷歌浏览器": "Chrome",
    "google浏览器": "Chrome",
    "settings": "设置",
    "系统设置": "设置",
}

KNOWN_PACKAGES: Dict[str, str] = {
    "哔哩哔哩": "tv.danmaku.bili",
    "微信": "com.tencent.mm",
    "支付宝": "com.eg.android.AlipayGphone",
    "抖音": "com.ss.android.ugc.aweme",
    "淘宝": "com.taobao.taobao",
    "京东": "com.jingdong.app.mall",
    "QQ": "com.tencent.mobileqq",
    "Chrome": "com.android.chrome",
    "设置": "com.android.settings",
}

_PACKAGE_RE = re.compile(r"^[A-Za-z]\w*(\.[A-Za-z]\w*)+$", re.ASCII)

Runner = Callable[..., subprocess.CompletedProcess]


def escape_input_text(text: str) -> str:
    """
    Quote text as one `input text` argument for the device shell.

    Spaces become %s (how `input text` spells a space); everything else is
    single-quoted so the device `sh` sees a literal word.
    """
    return shlex.quote(text.replace(" ", "%s"))


def has_control_chars(text: str) -> bool:
    return any(unicodedata.category(ch) == "Cc" for ch in text)


def resolve_app_name(name: str) -> str:
    """Map an alias (case-insensitive) to its standard label; unknown names pass through."""
    cleaned = (name or "").strip()
    return APP_ALIASES.get(cleaned.lower(), cleaned)


def is_package_name(name: str) -> bool:
    return bool(_PACKAGE_RE.match(name or ""))


class AdbDriver:
    def __init__(
        self,
        adb_path: Optional[str] = None,
        serial: Optional[str] = None,
        runner: Optional[Runner] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.adb_path = adb_path or os.getenv("SCREEN_AGENT_ADB") or "adb"
        self.serial = serial if serial is not None else (os.getenv("SCREEN_AGENT_ADB_SERIAL") or None)
        self._runner: Runner = runner or subprocess.run
        self.timeout = timeout
        self._packages: Optional[List[str]] = None

    # ------------------------------------------------------------- plumbing

    def _base(self) -> List[str]:
        cmd = [self.adb_path]
        if self.serial:
            cmd += ["-s", self.serial]
        return cmd

    def _run(self, args: List[str]) -> bytes:
        try:
            completed = self._runner(
                self._base() + args,
                capture_output=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise DriverActionFailure(f"adb not found: {self.adb_path}") from exc
        except subprocess.TimeoutExpired as exc:
            raise DriverActionFailure(f"adb command timed out: {' '.join(args)}") from exc
        except OSError as exc:
            raise DriverActionFailure(f"adb failed to start: {exc}") from exc
        if completed.returncode != 0:
            stderr = (completed.stderr or b"").decode("utf-8", errors="replace").strip()
            stdout = (completed.stdout or b"").decode("utf-8", errors="replace").strip()
            raise DriverActionFailure(stderr or stdout or f"adb exited with {completed.returncode}")
        return completed.stdout or b""

    def shell(self, command: str) -> str:
        return self._run(["shell", command]).decode("utf-8", errors="replace")

    def _action(self, command: str) -> DriverResult:
        try:
            output = self.shell(command)
        except DriverActionFailure as exc:
            logger.warning("adb shell %r failed: %s", command, exc)
            return DriverResult.failure(str(exc))
        if "Error" in output or "Exception" in output:
            return DriverResult.failure(output.strip()[:200])
        return DriverResult.success()

    # -------------------------------------------------------------- capture

    def capture_screen(self) -> Image.Image:
        data = self._run(["exec-out", "screencap", "-p"])
        try:
            return decode_png(data)
        except ValueError as exc:
            raise DriverActionFailure(f"screencap failed: {exc}") from exc

    def capture_ui_tree(self) -> List[RawNode]:
        try:
            self.shell(f"uiautomator dump {UI_DUMP_PATH}")
            xml_text = self.shell(f"cat {UI_DUMP_PATH}")
        except DriverActionFailure as exc:
            logger.warning("uiautomator dump failed: %s", exc)
            return []
        return parse_ui_dump(xml_text)

    # -------------------------------------------------------------- actions

    def tap(self, x: int, y: int) -> DriverResult:
        return self._action(f"input tap {x} {y}")

    def swipe(self, x1: int, y1: int, x2: int, y2: int, duration_ms: int) -> DriverResult:
        return self._action(f"input swipe {x1} {y1} {x2} {y2} {duration_ms}")

    def long_press(self, x: int, y: int, duration_ms: int) -> DriverResult:
        return self._action(f"input swipe {x} {y} {x} {y} {duration_ms}")

    def type_text(self, text: str) -> DriverResult:
        if not text:
            return DriverResult.success()
        if has_control_chars(text):
            return DriverResult.failure("text contains control characters")
        if not text.isascii():
            # `input text` cannot type non-ASCII; ADBKeyboard accepts it via broadcast.
            try:
                output = self.shell(f"am broadcast -a ADB_INPUT_TEXT --es msg {shlex.quote(text)}")
            except DriverActionFailure as exc:
                return DriverResult.failure(str(exc))
            if "Broadcast completed" not in output:
                return DriverResult.failure("non-ASCII input needs ADBKeyboard installed and enabled")
            return DriverResult.success()
        return self._action(f"input text {escape_input_text(text)}")

    def press_back(self) -> DriverResult:
        return self._action(f"input keyevent {KEYCODE_BACK}")

    def press_home(self) -> DriverResult:
        return self._action(f"input keyevent {KEYCODE_HOME}")

    def press_enter(self) -> DriverResult:
        return self._action(f"input keyevent {KEYCODE_ENTER}")

    # ---------------------------------------------------------------- apps

    def installed_packages(self, refresh: bool = False) -> List[str]:
        if self._packages is None or refresh:
            try:
                output = self.shell("pm list packages")
            except DriverActionFailure as exc:
                logger.warning("pm list packages failed: %s", exc)
                return []
            packages = (line[len("package:"):].strip() for line in output.splitlines() if line.startswith("package:"))
            self._packages = [p for p in packages if is_package_name(p)]
        return list(self._packages)

    def resolve_package(self, name: str) -> Optional[str]:
        label = resolve_app_name(name)
        for known_label, package in KNOWN_PACKAGES.items():
            if known_label.lower() == label.lower():
                return package
        if is_package_name(label):
            return label
        lowered = label.lower()
        for package in self.installed_packages():
            if lowered and lowered in package.lower().split("."):
                return package
        return None

    def suggest_apps(self, name: str, limit: int = 3) -> List[str]:
        label = resolve_app_name(name).lower()
        candidates = list(KNOWN_PACKAGES.keys()) + self.installed_packages()
        contains = [c for c in candidates if label and label in c.lower()]
        if contains:
            return contains[:limit]
        return difflib.get_close_matches(label, [c.lower() for c in candidates], n=limit, cutoff=0.6)

    def launch_app(self, name: str) -> DriverResult:
        package = self.resolve_package(name)
        if package is None:
            return self._not_found(name)
        if not is_package_name(package):
            return DriverResult.failure(f"invalid package name: {package!r}")
        try:
            output = self.shell(f"monkey -p {shlex.quote(package)} -c android.intent.category.LAUNCHER 1")
        except DriverActionFailure as exc:
            return DriverResult.failure(str(exc))
        if "No activities found" in output:
            return self._not_found(name)
        return DriverResult.success(package)

    def _not_found(self, name: str) -> DriverResult:
        suggestions = self.suggest_apps(name)
        if suggestions:
            return DriverResult.failure(f"App '{name}' not found. Similar apps: {', '.join(suggestions)}")
        return DriverResult.failure(f"App '{name}' not found")


__all__ = [
    "APP_ALIASES",
    "AdbDriver",
    "KNOWN_PACKAGES",
    "escape_input_text",
    "has_control_chars",
    "is_package_name",
    "resolve_app_name",
]
