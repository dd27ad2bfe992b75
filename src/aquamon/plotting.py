"""Time-series plot of a monitor log (requires the `plot` extra)."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import matplotlib

from .history import load_log


def plot_log(csv_path: Path, out_path: Optional[Path] = None) -> Optional[Path]:
    """Plot EC/TDS, pH/ORP and temperature. Saves to *out_path* or shows a window."""
    if out_path is not None:
        matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    data = load_log(csv_path)
    if data.empty:
        raise ValueError(f"No records in {csv_path}")
    fig, (ax_cond, ax_chem, ax_temp) = plt.subplots(3, 1, figsize=(10, 8), sharex=True)

    ax_cond.plot(data.index, data["ec"], label="EC [mS/cm]", color="tab:blue")
    ax_cond.set_ylabel("EC [mS/cm]", color="tab:blue")
    ax_tds = ax_cond.twinx()
    ax_tds.plot(data.index, data["tds"], label="TDS [ppm]", color="tab:cyan")
    ax_tds.set_ylabel("TDS [ppm]", color="tab:cyan")

    ax_chem.plot(data.index, data["ph"], label="pH", color="tab:green")
    ax_chem.set_ylabel("pH", color="tab:green")
    ax_orp = ax_chem.twinx()
    ax_orp.plot(data.index, data["orp"], label="ORP [mV]", color="tab:red")
    ax_orp.set_ylabel("ORP [mV]", color="tab:red")

    ax_temp.plot(data.index, data["temp"], color="tab:orange")
    ax_temp.set_ylabel("Temp [C]", color="tab:orange")
    ax_temp.set_xlabel("Time")

    fig.tight_layout()
    if out_path is None:
        plt.show()
        return None
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=120)
    plt.close(fig)
    return out_path
