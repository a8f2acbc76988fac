import signal
import sys

import pytest

from vmsense.sysutil import (
    ExecResult,
    contains_icase,
    exec_capture,
    path_exists,
    read_all,
    read_first_line,
    read_text,
    trim,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  kvm \n", "kvm"),
        ("\t\r\nQEMU\r\n", "QEMU"),
        ("", ""),
        ("   ", ""),
        ("a b", "a b"),
    ],
)
def test_trim(raw, expected):
    assert trim(raw) == expected


def test_trim_is_idempotent():
    once = trim("\v\f value \n")
    assert trim(once) == once == "value"


@pytest.mark.parametrize(
    "haystack, needle, expected",
    [
        ("VMware, Inc.", "vmware", True),
        ("innotek GmbH", "INNOTEK", True),
        ("Dell Inc.", "qemu", False),
        ("anything", "", True),
        ("", "x", False),
    ],
)
def test_contains_icase(haystack, needle, expected):
    assert contains_icase(haystack, needle) is expected


def test_read_text_reads_content(tmp_path):
    target = tmp_path / "sys_vendor"
    target.write_text("QEMU\n")
    assert read_text(target) == "QEMU\n"


def test_read_text_respects_limit(tmp_path):
    target = tmp_path / "big"
    target.write_text("abcdefgh")
    assert read_text(target, 3) == "abc"


def test_read_text_missing_file(tmp_path):
    assert read_text(tmp_path / "absent") is None


def test_read_first_line(tmp_path):
    target = tmp_path / "product_name"
    target.write_text("  VirtualBox  \nsecond line\n")
    assert read_first_line(target) == "VirtualBox"


def test_read_first_line_empty_file(tmp_path):
    target = tmp_path / "empty"
    target.write_bytes(b"")
    assert read_first_line(target) is None


def test_read_first_line_missing(tmp_path):
    assert read_first_line(tmp_path / "nope") is None


def test_read_all_returns_everything(tmp_path):
    target = tmp_path / "cpuinfo"
    content = "flags\t: fpu vme hypervisor\n" * 5000
    target.write_text(content)
    assert read_all(target) == content


def test_read_all_missing(tmp_path):
    assert read_all(tmp_path / "missing") is None


def test_path_exists(tmp_path):
    (tmp_path / "xen").mkdir()
    assert path_exists(tmp_path / "xen") is True
    assert path_exists(tmp_path / "not-here") is False


def test_exec_capture_empty_argv():
    assert exec_capture([]) == ExecResult(exit_code=-1, stdout="", stderr="")


def test_exec_capture_stdout_and_code():
    result = exec_capture([sys.executable, "-c", "print('kvm')"])
    assert result.exit_code == 0
    assert trim(result.stdout) == "kvm"


def test_exec_capture_stderr_and_exit_status():
    code = "import sys; sys.stderr.write('oops'); sys.exit(3)"
    result = exec_capture([sys.executable, "-c", code])
    assert result.exit_code == 3
    assert result.stderr == "oops"
    assert result.stdout == ""


def test_exec_capture_missing_program():
    result = exec_capture(["definitely-not-a-real-program-xyz"])
    assert result.exit_code == 127


def test_exec_capture_signal_exit():
    code = "import os, signal; os.kill(os.getpid(), signal.SIGTERM)"
    result = exec_capture([sys.executable, "-c", code])
    assert result.exit_code == 128 + signal.SIGTERM


def test_exec_capture_timeout_kills():
    code = "import time; time.sleep(30)"
    result = exec_capture([sys.executable, "-c", code], timeout=0.3)
    assert result.exit_code == 128 + signal.SIGKILL