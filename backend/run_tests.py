#!/usr/bin/env python
"""於 backend 目錄執行：python run_tests.py（OB 試算與月結測試）"""
import sys
import subprocess

if __name__ == "__main__":
    sys.exit(subprocess.call([sys.executable, "-m", "pytest", "tests/", "-v", "--tb=short"]))
