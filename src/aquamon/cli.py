"""Command line interface for the aquamon package."""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional

import typer

from .config import SerialSettings, load_config
from .decoder import decode_response
from .errors import AquamonError, ConfigError, TransportOpenError
from .frames import ResponseFormat, append_crc, crc16_modbus, issue_read_data, issue_set_response_format
from .runner import MonitorHost
from .transport import open_transport

app = typer.Typer(add_completion=False, context_settings={"help_option_names": ["-h", "--help"]})


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (DEBUG, INFO, WARNING...)."),
) -> None:
    """Water-quality sensor monitor: Modbus-RTU acquisition, CSV log, UDP status display."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%d-%m-%Y %H:%M:%S",
    )


@app.command("run")
def run_monitor(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON config file."),
    override: Optional[List[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set serial.port=/dev/ttyUSB1 --set acquisition.max_cycles=0",
    ),
    simulate: bool = typer.Option(False, "--simulate", help="Use the in-process simulated sensor."),
) -> None:
    """Poll the sensor, log averaged readings and broadcast status until done or Ctrl+C."""

    try:
        cfg = load_config(config_path, override)
    except ConfigError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    host = MonitorHost(cfg, simulate=simulate)
    code = host.run()
    if code:
        raise typer.Exit(code=code)


@app.command()
def read(
    port: str = typer.Option("/dev/ttyUSB0", "--port", "-p", help="Serial device."),
    baudrate: int = typer.Option(9600, "--baud", help="Serial baudrate."),
    address: int = typer.Option(1, "--address", "-a", help="Modbus device address."),
    fmt: str = typer.Option("ph", "--format", "-f", help="Response format to request: ph|orp."),
    settle: float = typer.Option(2.0, "--settle", help="Delay after the format command (seconds)."),
    simulate: bool = typer.Option(False, "--simulate", help="Use the in-process simulated sensor."),
) -> None:
    """Request one format, wait, read once and print decoded values."""

    try:
        response_format = ResponseFormat(fmt.lower())
    except ValueError as exc:
        raise typer.BadParameter("--format must be ph or orp", param_hint="--format") from exc
    settings = SerialSettings(port=port, baudrate=baudrate, address=address)
    try:
        transport = open_transport(settings, simulate=simulate)
    except TransportOpenError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    try:
        issue_set_response_format(transport, address, response_format)
        time.sleep(settle)
        response = issue_read_data(transport, address)
    except AquamonError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        transport.close()
    reading = decode_response(response, response_format)
    typer.echo(f"raw:  {response.hex(' ')}")
    typer.echo(f"cf:   {reading.cf:.2f}")
    typer.echo(f"ec:   {reading.ec:.2f} mS")
    typer.echo(f"tds:  {reading.tds:.2f} ppm")
    if reading.ph is not None:
        typer.echo(f"ph:   {reading.ph:.2f} pH")
    if reading.orp is not None:
        typer.echo(f"orp:  {reading.orp} mV")
    typer.echo(f"re:   {reading.relative_value} %")
    typer.echo(f"temp: {reading.temperature:.1f} C")


@app.command()
def crc(
    data: List[str] = typer.Argument(..., help="Frame bytes as hex, e.g. 01 03 00 00 00 04"),
) -> None:
    """Print the CRC-16/MODBUS of a byte sequence and the CRC-appended frame."""

    try:
        frame = bytes.fromhex("".join(data))
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid hex input: {exc}") from exc
    value = crc16_modbus(frame)
    typer.echo(f"CRC:   0x{value:04X}")
    typer.echo(f"Frame: {append_crc(frame).hex(' ').upper()}")


@app.command()
def history(
    input_path: Path = typer.Option(..., "--in", help="Monitor CSV log.", exists=True, readable=True),
) -> None:
    """Summarise a CSV log (min/mean/max per channel)."""

    from .history import load_log, summarize

    df = load_log(input_path)
    typer.echo(f"Records: {len(df)}")
    if len(df):
        typer.echo(f"Span:    {df.index.min()} .. {df.index.max()}")
    typer.echo(summarize(df).to_string(float_format=lambda v: f"{v:.2f}"))


@app.command()
def plot(
    input_path: Path = typer.Option(..., "--in", help="Monitor CSV log.", exists=True, readable=True),
    out: Optional[Path] = typer.Option(None, "--out", help="Save PNG here instead of opening a window."),
) -> None:
    """Plot a CSV log (requires matplotlib: pip install .[plot])."""

    try:
        from .plotting import plot_log
    except ImportError as exc:
        raise typer.BadParameter("Matplotlib is required for plot (pip install .[plot])") from exc
    saved = plot_log(input_path, out)
    if saved is not None:
        typer.echo(f"Plot written to {saved}")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
