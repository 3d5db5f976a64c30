"""Command line entry point for the remote concatenation tool."""

from __future__ import annotations

import logging
from typing import Optional

import click

from .config import ConfigManager
from .exceptions import RemoteConcatError
from .main import RemoteConcatenator
from .utils import configure_logging
from .utils.report import ReportGenerator

LOGGER = logging.getLogger(__name__)


def _section(config_dict, name):
    section = config_dict.get(name)
    if section is None:
        section = config_dict[name] = {}
    return section


@click.command()
@click.argument("bucket")
@click.argument("source")
@click.argument("target")
@click.option("--cleanup", "-c", is_flag=True, help="Remove source objects after their target is committed.")
@click.option("--dry-run", "-d", is_flag=True, help="Only print the planned concatenations.")
@click.option("--quiet", "-q", is_flag=True, help="Only print errors during execution.")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Path to a YAML configuration file.")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False), help="Override logging level.")
@click.option("--max-workers", type=int, help="Number of target keys processed in parallel.")
@click.option("--part-workers", type=int, help="Number of parallel part copies per upload.")
@click.option("--overflow", type=click.Choice(["report", "split"]), help="What to do with targets needing more than 10,000 parts.")
@click.option("--syntax", "pattern_syntax", type=click.Choice(["auto", "glob", "regex"]), help="How to read the source pattern.")
@click.option("--report-dir", type=click.Path(file_okay=False), help="Write text and JSON reports to this directory.")
@click.option("--region", help="AWS region name.")
@click.option("--profile", help="AWS profile name.")
@click.option("--endpoint-url", help="Custom S3 endpoint, for S3-compatible services.")
@click.version_option(version="1.0.0")
def main(
    bucket: str,
    source: str,
    target: str,
    cleanup: bool,
    dry_run: bool,
    quiet: bool,
    config_path: Optional[str],
    log_level: Optional[str],
    max_workers: Optional[int],
    part_workers: Optional[int],
    overflow: Optional[str],
    pattern_syntax: Optional[str],
    report_dir: Optional[str],
    region: Optional[str],
    profile: Optional[str],
    endpoint_url: Optional[str],
) -> None:
    """Concatenate objects under BUCKET matching SOURCE into TARGET keys.

    BUCKET is ``s3://bucket/prefix``. SOURCE is a glob or a regular
    expression; its capture groups are referenced in TARGET as $1, $2...

    SOURCE is read as a regular expression only when it contains one of
    ( ) { } \\ ^ $ + |. Otherwise it is a glob, so a pattern such as
    logs/.* matches a literal dot; pass --syntax regex to read it as a
    regular expression.
    """
    config = ConfigManager(config_path)
    try:
        config.load()
    except RemoteConcatError as exc:
        configure_logging({}, quiet=quiet)
        LOGGER.error("Execution failed: %s", exc)
        raise SystemExit(1) from exc

    concat_overrides = {
        "target_concurrency": max_workers,
        "part_concurrency": part_workers,
        "overflow": overflow,
        "pattern_syntax": pattern_syntax,
    }
    for key, value in concat_overrides.items():
        if value is not None:
            _section(config.config, "concat")[key] = value
    aws_overrides = {"region": region, "profile": profile, "endpoint_url": endpoint_url}
    for key, value in aws_overrides.items():
        if value is not None:
            _section(config.config, "aws")[key] = value
    if log_level is not None:
        _section(config.config, "logging")["level"] = log_level.upper()
    if report_dir is not None:
        _section(config.config, "report")["directory"] = report_dir

    configure_logging(config.get_logging_config(), quiet=quiet)

    try:
        config.validate()
        concatenator = RemoteConcatenator.from_config(config, show_progress=not quiet)
        report = concatenator.run(bucket, source, target, cleanup=cleanup, dry_run=dry_run)
    except RemoteConcatError as exc:
        LOGGER.error("Execution failed: %s", exc)
        raise SystemExit(1) from exc

    generator = ReportGenerator()
    if not quiet:
        click.echo(generator.render_text(report))

    output_dir = config.get_report_config().get("directory")
    if output_dir:
        try:
            generator.generate(report, output_dir)
        except OSError as exc:
            LOGGER.warning("Failed to generate report: %s", exc)

    raise SystemExit(report.exit_code)


if __name__ == "__main__":
    main()
