"""
Flask CLI commands for one-off administrative tasks.

Usage:
    flask recompute-health-scores                    # Repair every plant
    flask recompute-health-scores --user <id>        # Only one user's plants
    flask recompute-health-scores --dry-run          # Report drift, write nothing
    flask plant-evolution <plant_id> --user <id>     # Print periods and trend
"""

from __future__ import annotations

import click
from flask.cli import with_appcontext


@click.command("recompute-health-scores")
@click.option("--user", "user_id", default=None,
              help="Only recompute plants owned by this user.")
@click.option("--dry-run", is_flag=True, default=False,
              help="Report plants whose stored score lags their latest photo without writing.")
@with_appcontext
def recompute_health_scores_command(user_id: str | None, dry_run: bool) -> None:
    """Reconcile plants.health_score with each plant's latest analyzed photo."""
    from planthealth.services import garden_cache, scoring, supabase_client

    if not supabase_client.is_configured():
        click.echo("Error: Supabase not configured (SUPABASE_URL / SUPABASE_ANON_KEY missing).")
        raise SystemExit(1)

    if user_id:
        plants = supabase_client.get_user_plants_with_observations(user_id)
    else:
        plants = supabase_client.get_all_plants_with_observations()

    if not plants:
        click.echo("No plants found.")
        return

    click.echo(f"Checking {len(plants)} plant(s)...")

    updated = 0
    failed = 0
    touched_users = set()

    for plant in plants:
        latest = scoring.latest_observation(plant.get("observations") or [])
        score = scoring.observation_score(latest) if latest else None
        if score is None or score == plant.get("health_score"):
            continue

        click.echo(f"  {plant.get('id')}: {plant.get('health_score')} -> {score}")
        if dry_run:
            continue

        ok, error = supabase_client.update_plant_health_score(plant["id"], plant["user_id"], score)
        if ok:
            updated += 1
            touched_users.add(plant["user_id"])
        else:
            failed += 1
            click.echo(f"  Failed: {error}")

    for owner in touched_users:
        garden_cache.invalidate(owner)

    if dry_run:
        click.echo("\nDry run, no scores written.")
        return

    click.echo(f"\nDone. Updated: {updated}, Failed: {failed}")


@click.command("plant-evolution")
@click.argument("plant_id")
@click.option("--user", "user_id", required=True, help="Owner of the plant.")
@with_appcontext
def plant_evolution_command(plant_id: str, user_id: str) -> None:
    """Print a plant's evolution periods and overall trend."""
    from planthealth.services import evolution, supabase_client

    plant = supabase_client.get_plant_with_observations(plant_id, user_id)
    if not plant:
        click.echo("Plant not found.")
        raise SystemExit(1)

    view = evolution.build_evolution(plant)
    if not view["periods"]:
        click.echo("No observations yet.")
        return

    for period in view["periods"]:
        click.echo(
            f"{period['id']}: {period['start_date'][:10]} .. {period['end_date'][:10]} "
            f"avg={period['average_score']:.1f} trend={period['trend']} photos={period['photo_count']}"
        )

    click.echo(f"\nOverall trend: {view['overall_trend'] or 'n/a'}")
    if view["current_score"] is not None:
        click.echo(f"Current score: {view['current_score']:.0f}")
