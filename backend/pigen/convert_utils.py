# backend/pigen/convert_utils.py
import os
import subprocess
from typing import List, Optional, Tuple


def run_cmd(cmd: list, timeout: Optional[float] = None) -> Tuple[int, str, str]:
    proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, timeout=timeout)
    return proc.returncode, proc.stdout, proc.stderr


def build_soffice_command(input_path: str, output_dir: str, soffice_bin: str = "soffice") -> List[str]:
    """
    Headless LibreOffice conversion of a spreadsheet to PDF. The PDF lands in
    output_dir with the input's stem, e.g. contrato.xlsx -> contrato.pdf.

    A private user profile per output_dir keeps concurrent conversions from
    fighting over the default profile lock.
    """
    profile = "file://" + os.path.abspath(os.path.join(output_dir, ".lo-profile"))
    return [
        soffice_bin,
        f"-env:UserInstallation={profile}",
        "--headless",
        "--norestore",
        "--convert-to", "pdf",
        "--outdir", output_dir,
        input_path,
    ]


def expected_output(input_path: str, output_dir: str, ext: str = "pdf") -> str:
    stem = os.path.splitext(os.path.basename(input_path))[0]
    return os.path.join(output_dir, f"{stem}.{ext}")
