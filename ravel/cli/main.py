"""Main CLI entrypoint for ravel."""

import json
import logging
import sys
from typing import Any, Dict, List, Optional

import click

from .. import orchestrator
from ..config import CloudConfig
from ..errors import RavelError
from ..handlers.aws.session import CloudSession
from ..handlers.registry import HandlerRegistry, build_default_registry
from ..inventory import AWS_DEPENDENCIES
from ..manifest import ManifestError, load_manifest
from ..power import PowerState
from ..tags import parse_user_tags
from ..wait import Deadline

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@click.group()
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
@click.option('--verbose', '-v', is_flag=True, help='Log every API call and poll')
@click.pass_context
def main(ctx, output_json, verbose):
    """Ravel - Reconcile and tear down cluster cloud resources."""
    ctx.ensure_object(dict)
    ctx.obj['json'] = output_json
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)


def _json_output(data: Any) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=None, default=str))


def _human_output(message: str) -> None:
    """Output human-readable message."""
    if not click.get_current_context().obj.get('json', False):
        click.echo(message)


def _fail(message: str, code: int = 1) -> None:
    if click.get_current_context().obj.get('json', False):
        _json_output({'error': message})
    else:
        click.echo(f"❌ {message}")
    sys.exit(code)


def cloud_options(f):
    """Options shared by every command that talks to the cloud."""
    f = click.option('--region', help='AWS region (default: $RAVEL_REGION or eu-west-3)')(f)
    f = click.option('--zone', help='Availability zone for zonal resources')(f)
    f = click.option('--profile', help='AWS credentials profile')(f)
    f = click.option('--dns-zone', help='Route 53 zone holding the cluster records')(f)
    return f


def _build_config(region: Optional[str], zone: Optional[str], profile: Optional[str],
                  dns_zone: Optional[str]) -> CloudConfig:
    return CloudConfig.from_env(region=region, zone=zone, profile=profile, dns_zone=dns_zone)


def _build_registry(config: CloudConfig, deadline: Optional[Deadline]) -> HandlerRegistry:
    return build_default_registry(CloudSession(config), config, deadline)


def _deadline(timeout: Optional[float]) -> Optional[Deadline]:
    return Deadline(timeout) if timeout else None


@main.command()
@click.option('--manifest', 'manifest_path', required=True, type=click.Path(dir_okay=False),
              help='YAML manifest of desired resources')
@click.option('--cluster', help='Cluster name (must match the manifest)')
@click.option('--tag', 'tags', multiple=True, help='Extra tag for every resource (key=value, repeatable)')
@click.option('--timeout', type=float, help='Give up after this many seconds')
@cloud_options
@click.pass_context
def reconcile(ctx, manifest_path, cluster, tags, timeout, region, zone, profile, dns_zone):
    """Create or update a cluster's resources from a manifest."""
    try:
        config = _build_config(region, zone, profile, dns_zone)
        manifest_cluster, desired_states = load_manifest(manifest_path, config, parse_user_tags(list(tags)))
    except (ValueError, ManifestError) as e:
        _fail(str(e))

    if cluster and cluster != manifest_cluster:
        _fail(f"Manifest is for cluster {manifest_cluster}, not {cluster}")

    deadline = _deadline(timeout)
    _human_output(f"🔧 Reconciling {len(desired_states)} resource(s) for {manifest_cluster}")
    result = orchestrator.reconcile_cluster(
        manifest_cluster,
        desired_states,
        _build_registry(config, deadline),
        deadline=deadline,
        settings={'region': config.region, 'manifest': manifest_path},
    )

    if ctx.obj['json']:
        _json_output(result)
    else:
        for task in result.get('results', []):
            _human_output(f"  {_action_icon(task['action'])} {task['kind']} {task['name']}: {task['action']}"
                          + (f" ({', '.join(task['changed_fields'])})" if task['changed_fields'] else ""))
        _print_result_human(result)

    sys.exit(0 if result['status'] == 'succeeded' else 1)


@main.command('delete-cluster')
@click.option('--cluster', required=True, help='Cluster whose resources to delete')
@click.option('--yes', is_flag=True, help='Delete; without this only the plan is printed')
@click.option('--workers', type=click.IntRange(min=1), default=1, show_default=True,
              help='Concurrent deletions per pass')
@click.option('--timeout', type=float, help='Give up after this many seconds')
@click.option('--refresh', is_flag=True, help='Re-list resources after every pass')
@cloud_options
@click.pass_context
def delete_cluster(ctx, cluster, yes, workers, timeout, refresh, region, zone, profile, dns_zone):
    """Delete every resource tagged for a cluster, in dependency order."""
    try:
        config = _build_config(region, zone, profile, dns_zone)
    except ValueError as e:
        _fail(str(e))

    deadline = _deadline(timeout)
    if yes:
        _human_output(f"🗑️  Deleting resources of {cluster}...")
    result = orchestrator.delete_cluster_resources(
        cluster,
        _build_registry(config, deadline),
        dependencies=AWS_DEPENDENCIES,
        max_workers=workers,
        deadline=deadline,
        refresh=refresh,
        dry_run=not yes,
        settings={'region': config.region},
    )

    if ctx.obj['json']:
        _json_output(result)
    else:
        if result.get('plan') is not None:
            _print_plan_human(result['plan'])
        if result['status'] == 'planned':
            _human_output("\nRe-run with --yes to delete these resources.")
        _print_result_human(result)

    sys.exit(0 if result['status'] in ('succeeded', 'planned') else 1)


@main.command()
@click.argument('server_id')
@click.option('--state', 'to_state', required=True, type=click.Choice([s.value for s in PowerState]),
              help='Power state to reach')
@click.option('--timeout', type=float, help='Give up after this many seconds')
@cloud_options
@click.pass_context
def power(ctx, server_id, to_state, timeout, region, zone, profile, dns_zone):
    """Start, stop or hibernate one server."""
    try:
        config = _build_config(region, zone, profile, dns_zone)
    except ValueError as e:
        _fail(str(e))

    deadline = _deadline(timeout)
    _human_output(f"⚡ Driving {server_id} to {to_state}...")
    try:
        reached = orchestrator.set_power_state(
            _build_registry(config, deadline),
            server_id,
            to_state,
            interval=config.wait_interval,
            timeout=config.wait_timeout,
            deadline=deadline,
        )
    except RavelError as e:
        _fail(str(e))

    if ctx.obj['json']:
        _json_output({'server_id': server_id, 'state': reached})
    else:
        _human_output(f"✅ {server_id} is {reached}")


@main.command()
@click.argument('run_id')
@click.pass_context
def status(ctx, run_id):
    """Show the status of a run."""
    info = orchestrator.status(run_id)
    if info['status'] == 'not_found':
        _fail(f"Run {run_id} not found", code=2)

    if ctx.obj['json']:
        _json_output(info)
        return

    color = {'succeeded': 'green', 'planned': 'blue'}.get(info['status'], 'red')
    click.echo(f"📊 Run: {run_id}")
    click.echo(f"Operation: {info.get('operation')} on {info.get('cluster')}")
    click.echo(f"Status: {click.style(info['status'], fg=color)}")
    report = info.get('report') or {}
    if report.get('error'):
        click.echo(f"Error: {report['error']}")
    for key, blockers in (report.get('stuck') or {}).items():
        click.echo(f"  {key} blocked by {', '.join(blockers)}")


@main.command()
@click.argument('run_id')
@click.pass_context
def logs(ctx, run_id):
    """Show the events of a run."""
    if orchestrator.status(run_id)['status'] == 'not_found':
        _fail(f"Run {run_id} not found", code=2)

    for event in orchestrator.logs(run_id):
        if ctx.obj['json']:
            _json_output(event)
        else:
            _print_event_human(event)


def _action_icon(action: str) -> str:
    return {'created': '➕', 'updated': '✏️ ', 'unchanged': '✔'}.get(action, '•')


def _print_plan_human(plan: List[List[str]]) -> None:
    if not plan:
        _human_output("Nothing to delete.")
        return
    _human_output("📋 Teardown plan:")
    for number, keys in enumerate(plan, 1):
        _human_output(f"  Pass {number}:")
        for key in keys:
            _human_output(f"    - {key}")


def _print_result_human(result: Dict[str, Any]) -> None:
    status = result['status']
    if status == 'succeeded':
        _human_output(f"✅ Done (run {result['run_id']})")
    elif status == 'stuck':
        _human_output(f"❌ Teardown stuck (run {result['run_id']}):")
        for key, blockers in result.get('stuck', {}).items():
            _human_output(f"  {key} blocked by {', '.join(blockers)}")
    elif status == 'failed':
        _human_output(f"❌ Failed (run {result['run_id']}): {result.get('error')}")


def _print_event_human(event: Dict[str, Any]) -> None:
    """Print event in human-readable format."""
    event_type = event.get('type', 'UNKNOWN')
    timestamp = event.get('ts', '')
    time_str = timestamp[11:19] if len(timestamp) >= 19 else timestamp

    if event_type in ('DONE', 'RESOURCE_DELETED'):
        color = 'green'
    elif event_type in ('ERROR', 'TEARDOWN_STUCK'):
        color = 'red'
    elif event_type == 'RESOURCE_ALREADY_GONE':
        color = 'yellow'
    else:
        color = 'blue'

    data = json.dumps(event.get('data', {}), default=str)
    click.echo(f"[{time_str}] {click.style(event_type, fg=color)}: {data}")


if __name__ == '__main__':
    main()
