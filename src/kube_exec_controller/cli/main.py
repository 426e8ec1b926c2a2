"""Server command running the admission webhook and the controller."""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

import click
import uvicorn
from pydantic import ValidationError

from ..config import Settings
from ..logging import get_logger, setup_logging


def _overrides(**options: Any) -> Dict[str, Any]:
    """Map command-line options onto nested settings, skipping unset ones."""
    values: Dict[str, Any] = {}
    nested = {
        "cert_path": ("tls", "cert_path"),
        "key_path": ("tls", "key_path"),
        "interact_chan_size": ("channels", "interact_chan_size"),
        "extend_chan_size": ("channels", "extend_chan_size"),
        "log_level": ("logging", "level"),
        "log_format": ("logging", "format"),
    }
    for name, value in options.items():
        if value is None:
            continue
        if name in nested:
            section, key = nested[name]
            values.setdefault(section, {})[key] = value
        else:
            values[name] = value
    return values


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--config", "config_file", type=click.Path(dir_okay=False), help="YAML configuration file")
@click.option("--cert-path", type=str, help="Path to the PEM-encoded TLS certificate")
@click.option("--key-path", type=str, help="Path to the un-encrypted TLS key")
@click.option("--ttl-seconds", type=int, help="TTL (time-to-live) of interacted Pods before getting evicted by the controller  [default: 600]")
@click.option("--port", type=int, help="Port for the webhook server  [default: 8443]")
@click.option("--api-server", type=str, help="URL to the K8s api-server, required if running outside of the cluster")
@click.option("--namespace-allowlist", type=str, help="Comma separated list of namespaces that allow interaction without evicting their Pods")
@click.option("--interact-chan-size", type=int, help="Buffer size of the channel handling Pod interaction  [default: 500]")
@click.option("--extend-chan-size", type=int, help="Buffer size of the channel handling Pod extension updates  [default: 500]")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False), help="Log level  [default: INFO]")
@click.option("--log-format", type=click.Choice(["json", "console"]), help="Log format  [default: json]")
def main(config_file: Optional[str], **options: Any) -> None:
    """Serve the kube-exec-controller admission webhook over TLS."""
    if options.get("ttl_seconds") is not None and options["ttl_seconds"] < 0:
        raise click.ClickException("ttl-seconds cannot be set to a negative value")

    try:
        if config_file:
            file_settings = Settings(_config_file=config_file).model_dump()
            settings = Settings(**_merge(file_settings, _overrides(**options)))
        else:
            settings = Settings(**_overrides(**options))
    except ValidationError as exc:
        raise click.ClickException(f"invalid configuration: {exc}") from exc

    setup_logging(
        log_level=settings.logging.level,
        log_format=settings.logging.format,
        redact_commands=True,
    )
    logger = get_logger(__name__)

    cert_path, key_path = settings.tls.cert_path, settings.tls.key_path
    if not cert_path or not key_path:
        raise click.ClickException("both cert-path and key-path must be set")
    for path in (cert_path, key_path):
        if not os.path.isfile(path):
            raise click.ClickException(f"TLS file {path} does not exist")

    # pylint: disable=import-outside-toplevel
    from ..api import create_app
    from ..kube import KubernetesPodClient
    from ..service import KubeExecService

    try:
        client = KubernetesPodClient.in_cluster(settings.api_server)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Error in creating a K8s client", error=str(exc))
        raise click.ClickException(f"unable to create a Kubernetes client: {exc}") from exc

    app = create_app(KubeExecService(settings, client=client))

    logger.info(
        "Starting the webhook server",
        port=settings.port,
        ttl_seconds=settings.ttl_seconds,
        namespace_allowlist=settings.namespace_allowlist,
    )
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.port,
        ssl_certfile=cert_path,
        ssl_keyfile=key_path,
        access_log=False,
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    main()  # pylint: disable=no-value-for-parameter
