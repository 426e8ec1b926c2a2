"""``kubectl pi``: inspect Pod interactions and request eviction extensions.

Examples::

    # get interaction info of specified pod(s)
    kubectl pi get <pod-name-1> <pod-name-2> -n POD_NAMESPACE

    # get interaction info of all pods under the given namespace
    kubectl pi get -n <pod-namespace> --all

    # extend termination time of interacted pod(s)
    kubectl pi extend -d <duration> <pod-name-1> <pod-name-2> -n POD_NAMESPACE

    # extend termination time of all interacted pods under the given namespace
    kubectl pi extend -d <duration> -n <pod-namespace> --all
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

import click

from ..errors import KubeExecControllerError
from ..kube import KubernetesPodClient, PodClient, current_namespace
from ..metadata import (
    POD_EXTEND_DURATION_ANNOTATION,
    POD_EXTEND_REQUESTER_ANNOTATION,
    POD_INTERACTION_TIMESTAMP_LABEL,
    POD_INTERACTOR_LABEL,
    POD_TERMINATION_TIME_ANNOTATION,
    POD_TTL_DURATION_LABEL,
    is_valid_duration,
)
from ..models import Pod
from ..patch import MetadataType, build_metadata_patch

DEFAULT_EXTEND_DURATION = "30m"

ARGS_LENGTH_ERROR = "expecting at least one argument"
INVALID_ACTION_ERROR = "expecting an action of either 'get' or 'extend' in the command"
INVALID_DURATION_ERROR = "expecting an duration in the following format: 30s, 10m, 6h, 1d, etc"

NO_POD_RETURNED_MSG = "no pods returned under the namespace '{namespace}'"
NO_INTERACTION_MSG = "no interaction detected from the pod/{name}"
EXTENSION_EXISTS_MSG = "Warning: pod/{name} is already annotated with an extension={extension}"
OVERWRITE_PROMPT_MSG = "Please confirm to overwrite the existing extension"
EXTENSION_SUCCESS_MSG = (
    "Successfully extended the termination time of pod/{name} with a duration={duration}"
)

TABLE_HEADER = (
    "POD_NAME",
    "INTERACTOR",
    "POD_TTL",
    "EXTENSION",
    "EXTENSION_REQUESTER",
    "EVICTION_TIME",
)


class PiGroup(click.Group):
    """Accept actions case-insensitively and explain unknown ones."""

    def resolve_command(self, ctx: click.Context, args: List[str]):
        if args:
            args = [args[0].lower(), *args[1:]]
            if args[0] not in self.commands and not args[0].startswith("-"):
                raise click.UsageError(INVALID_ACTION_ERROR, ctx)
        return super().resolve_command(ctx, args)


def interaction_row(pod: Pod) -> Tuple[str, ...]:
    labels, annotations = pod.labels, pod.annotations
    return (
        pod.name,
        labels.get(POD_INTERACTOR_LABEL, ""),
        labels.get(POD_TTL_DURATION_LABEL, ""),
        annotations.get(POD_EXTEND_DURATION_ANNOTATION, ""),
        annotations.get(POD_EXTEND_REQUESTER_ANNOTATION, ""),
        annotations.get(POD_TERMINATION_TIME_ANNOTATION, ""),
    )


def render_table(rows: Iterable[Sequence[str]], padding: int = 2) -> str:
    """Left-align columns, the way ``kubectl get`` prints them."""
    table = [TABLE_HEADER, *rows]
    widths = [max(len(row[i]) for row in table) for i in range(len(TABLE_HEADER))]
    lines = []
    for row in table:
        cells = [cell.ljust(width + padding) for cell, width in zip(row, widths)]
        lines.append("".join(cells).rstrip())
    return "\n".join(lines)


def _client(ctx: click.Context) -> PodClient:
    obj = ctx.ensure_object(dict)
    if obj.get("client") is None:
        try:
            obj["client"] = KubernetesPodClient.from_kubeconfig(
                obj.get("kubeconfig"), obj.get("context")
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise click.ClickException(f"unable to create a Kubernetes client: {exc}") from exc
    return obj["client"]


def _namespace(ctx: click.Context, namespace: Optional[str]) -> str:
    if namespace:
        return namespace
    obj = ctx.ensure_object(dict)
    if obj.get("namespace"):
        return obj["namespace"]
    try:
        return current_namespace(obj.get("kubeconfig"), obj.get("context"))
    except Exception:  # pylint: disable=broad-exception-caught
        return "default"


def select_pods(
    client: PodClient, namespace: str, pod_names: Sequence[str], select_all: bool
) -> List[Pod]:
    """Fetch the named Pods, or every Pod in the namespace.

    A Pod that cannot be fetched is reported and skipped.
    """
    if select_all or not pod_names:
        try:
            return client.list_pods(namespace)
        except KubeExecControllerError as exc:
            raise click.ClickException(exc.message) from exc

    pods = []
    for name in pod_names:
        try:
            pods.append(client.get_pod(namespace, name))
        except KubeExecControllerError as exc:
            click.echo(exc.message)
    return pods


def ask_confirmation(prompt: str) -> bool:
    while True:
        answer = click.prompt(f"{prompt} [y/n]", prompt_suffix=": ", default="", show_default=False)
        answer = answer.strip().lower()
        if answer in ("y", "yes"):
            return True
        if answer in ("n", "no"):
            return False
        click.echo("Invalid input, please try again")


@click.group(cls=PiGroup, invoke_without_command=True)
@click.option("--kubeconfig", type=click.Path(dir_okay=False), help="Path to the kubeconfig file")
@click.option("--context", "kube_context", type=str, help="The kubeconfig context to use")
@click.pass_context
def main(ctx: click.Context, kubeconfig: Optional[str], kube_context: Optional[str]) -> None:
    """Get pod interaction info or request an extension of its termination time."""
    obj = ctx.ensure_object(dict)
    obj.setdefault("kubeconfig", kubeconfig)
    obj.setdefault("context", kube_context)
    if ctx.invoked_subcommand is None:
        raise click.UsageError(ARGS_LENGTH_ERROR, ctx)


@main.command("get")
@click.argument("pod_names", nargs=-1)
@click.option("-n", "--namespace", type=str, help="Namespace of the Pods")
@click.option("-a", "--all", "select_all", is_flag=True, help="Select all pods under the namespace, ignoring any Pod names")
@click.pass_context
def get_command(
    ctx: click.Context, pod_names: Tuple[str, ...], namespace: Optional[str], select_all: bool
) -> None:
    """Print interaction info of the selected Pods."""
    namespace = _namespace(ctx, namespace)
    pods = select_pods(_client(ctx), namespace, pod_names, select_all)
    if not pods:
        raise click.ClickException(NO_POD_RETURNED_MSG.format(namespace=namespace))
    click.echo(render_table(interaction_row(pod) for pod in pods))


@main.command("extend")
@click.argument("pod_names", nargs=-1)
@click.option("-d", "--duration", default=DEFAULT_EXTEND_DURATION, show_default=True, help="A relative duration such as 5s, 2m, 3h or 1d")
@click.option("-n", "--namespace", type=str, help="Namespace of the Pods")
@click.option("-a", "--all", "select_all", is_flag=True, help="Select all pods under the namespace, ignoring any Pod names")
@click.pass_context
def extend_command(
    ctx: click.Context,
    pod_names: Tuple[str, ...],
    duration: str,
    namespace: Optional[str],
    select_all: bool,
) -> None:
    """Request an extension of the termination time of the selected Pods.

    The requester is recorded by the admission webhook, not by this command.
    """
    if not is_valid_duration(duration):
        raise click.UsageError(INVALID_DURATION_ERROR, ctx)

    namespace = _namespace(ctx, namespace)
    client = _client(ctx)
    pods = select_pods(client, namespace, pod_names, select_all)
    if not pods:
        raise click.ClickException(NO_POD_RETURNED_MSG.format(namespace=namespace))

    for pod in pods:
        if POD_INTERACTION_TIMESTAMP_LABEL not in pod.labels:
            click.echo(NO_INTERACTION_MSG.format(name=pod.name))
            continue

        existing = pod.annotations.get(POD_EXTEND_DURATION_ANNOTATION)
        if existing is not None:
            click.echo(EXTENSION_EXISTS_MSG.format(name=pod.name, extension=existing))
            if not ask_confirmation(OVERWRITE_PROMPT_MSG):
                continue

        ops = build_metadata_patch(
            pod, MetadataType.ANNOTATIONS, {POD_EXTEND_DURATION_ANNOTATION: duration}
        )
        try:
            client.patch_pod(pod.namespace or namespace, pod.name, ops)
        except KubeExecControllerError as exc:
            click.echo(f"Failed to extend pod/{pod.name}: {exc.message}")
            continue
        click.echo(EXTENSION_SUCCESS_MSG.format(name=pod.name, duration=duration))


if __name__ == "__main__":  # pragma: no cover
    main()  # pylint: disable=no-value-for-parameter
