from __future__ import annotations

import json
import subprocess
from pathlib import Path

import numpy as np
import pytest

from tensor_interp.__main__ import main

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"

OUT_OF_BOUNDS = """
func.func @main(%t: tensor<2xf32>, %i: index) -> f32 {
  %e = "tensor.extract"(%t, %i) : (tensor<2xf32>, index) -> f32
  "func.return"(%e) : (f32) -> ()
}
"""


def test_cli_run_smoke():
    proc = subprocess.run(
        [
            "python",
            "-m",
            "tensor_interp",
            "run",
            str(EXAMPLES / "01_generate_pad.mlir"),
            "--arg",
            "3",
        ],
        capture_output=True,
        text=True,
        check=False,
    )
    if proc.returncode != 0:
        pytest.fail(f"CLI failed: {proc.returncode}\n{proc.stdout}\n{proc.stderr}")
    assert "# result 0" in proc.stdout
    assert "[-1  0  1  4 -1]" in proc.stdout


def test_cli_reads_npy_and_json_arguments(tmp_path: Path, capsys):
    data = np.arange(24, dtype=np.float32).reshape(2, 3, 4)
    npy = tmp_path / "t.npy"
    np.save(npy, data)
    main(["run", str(EXAMPLES / "02_reshape_slice.mlir"), "--arg", str(npy), "--explain"])
    out = capsys.readouterr().out
    assert "# result 2" in out
    assert "[op] %flat: tensor<6x4xf32> = tensor.collapse_shape" in out

    args = tmp_path / "row.json"
    args.write_text(json.dumps([1, 2, 3, 4]), encoding="utf-8")
    main(
        [
            "run",
            str(EXAMPLES / "03_insert_slice.mlir"),
            "--arg",
            json.dumps([[0] * 4] * 3),
            "--arg",
            str(args),
            "--arg",
            "1",
        ]
    )
    out = capsys.readouterr().out
    assert "# result 1" in out


def test_cli_exits_non_zero_on_failure(tmp_path: Path, capsys):
    program = tmp_path / "oob.mlir"
    program.write_text(OUT_OF_BOUNDS, encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        main(["run", str(program), "--arg", "[1.0, 2.0]", "--arg", "4"])
    assert excinfo.value.code == 1
    captured = capsys.readouterr()
    assert "error: array index out of bounds" in captured.err
    assert "None" in captured.out


def test_cli_missing_program(tmp_path: Path):
    with pytest.raises(SystemExit, match="Program file not found"):
        main(["run", str(tmp_path / "absent.mlir")])
