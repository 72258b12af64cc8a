#!/usr/bin/env python3
"""統一的檢查腳本，執行所有 linter、格式化工具與測試。

這個腳本會依序執行：
1. Black 格式化
2. isort 匯入排序
3. Ruff 靜態檢查
4. Pylint 靜態分析
5. pytest 單元測試

所有輸出會集中顯示，方便檢查錯誤。加上 --fast 可略過 Pylint。
"""

from pathlib import Path
import subprocess
import sys

PACKAGES = ["app", "core", "infrastructure"]


def run_command(cmd: list[str], description: str) -> tuple[bool, str]:
    """執行命令並返回成功狀態和輸出。"""
    print(f"\n{'='*60}")
    print(f"執行: {description}")
    print(f"命令: {' '.join(cmd)}")
    print("=" * 60)

    try:
        result = subprocess.run(
            cmd, capture_output=True, text=True, check=False, cwd=Path(__file__).parent
        )
    except OSError as e:
        print(f"❌ 執行錯誤: {e}")
        return False, str(e)

    success = result.returncode == 0
    output = result.stdout + result.stderr
    print("✅ 成功" if success else "❌ 失敗")
    if output.strip():
        print("\n輸出:")
        print(output)
    return success, output


def build_commands(fast: bool) -> list[tuple[list[str], str]]:
    """依參數組出要執行的命令清單。"""
    py = sys.executable
    commands = [
        ([py, "-m", "black", ".", "--check"], "Black 格式化檢查"),
        ([py, "-m", "isort", ".", "--check-only"], "isort 匯入排序檢查"),
        ([py, "-m", "ruff", "check", "."], "Ruff 靜態檢查"),
    ]
    if not fast:
        commands.append(([py, "-m", "pylint", *PACKAGES], "Pylint 靜態分析"))
    commands.append(([py, "-m", "pytest", "-q"], "pytest 單元測試"))
    return commands


def main() -> None:
    """主函數：依序執行所有檢查並輸出總結。"""
    results = [
        (description, *run_command(cmd, description))
        for cmd, description in build_commands(fast="--fast" in sys.argv[1:])
    ]

    print(f"\n{'='*60}")
    print("總結報告")
    print("=" * 60)
    for description, success, _ in results:
        print(f"{description}: {'✅ 通過' if success else '❌ 失敗'}")

    failed = [(d, out) for d, ok, out in results if not ok]
    print(f"\n整體結果: {'❌ 有錯誤' if failed else '✅ 全部通過'}")
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
