#!/usr/bin/env python3
"""
Digest Themes Pipeline Runner - theme labels for one digest run: embed → cluster → override
Also re-clusters stored vectors for admin regeneration.
"""

import asyncio
import json
import os
from typing import Optional

import click
import structlog
from pydantic import TypeAdapter

from services.pipeline.theme_labels import (
    cluster_items_with_existing_vectors,
    cluster_triage_themes,
    seeds_from_outputs,
)
from services.theme_cluster.embedder import BUDGET_TIERS, create_env_embeddings_client
from services.theme_cluster.overrides import apply_theme_label_overrides
from shared.schemas.theme import (
    SeedCluster,
    ThemeClusterInput,
    ThemeClusterResult,
    ThemeLabelOverrideOptions,
    ThemeVectorInput,
)

log = structlog.get_logger()

RESULT_FILENAME = "theme_labels.json"


def load_seeds(path: str) -> list[SeedCluster]:
    """Seeds from a prior theme_labels.json, or a plain list of {label, vector}"""
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict) and "items" in data:
        prior = ThemeClusterResult.model_validate(data)
        return seeds_from_outputs(prior.items)
    return TypeAdapter(list[SeedCluster]).validate_python(data)


@click.group()
def cli():
    """Theme label pipeline."""


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="JSON list of {candidate_id, topic}")
@click.option("--output-dir", "-o", default=os.getenv("THEMES_DATA_DIR", "/data/themes"), help="Output directory for results")
@click.option("--tier", type=click.Choice(BUDGET_TIERS), default="normal", show_default=True, help="Budget tier for the embedding model")
@click.option("--threshold", type=float, default=None, help="Similarity threshold (default: THEME_CLUSTER_THRESHOLD or 0.75)")
@click.option("--seeds", "seeds_file", default=None, help="Prior run theme_labels.json to keep labels stable")
@click.option("--min-label-words", type=int, default=1, show_default=True, help="Relabel items whose theme has fewer words")
@click.option("--max-dominance-pct", type=float, default=0.0, show_default=True, help="Relabel items under a theme holding this share of items")
def run(input_file: str, output_dir: str, tier: str, threshold: Optional[float],
        seeds_file: Optional[str], min_label_words: int, max_dominance_pct: float):
    """Cluster triage topics into theme labels."""

    os.makedirs(output_dir, exist_ok=True)

    log.info("Loading triage topics", file=input_file)
    with open(input_file) as f:
        inputs = TypeAdapter(list[ThemeClusterInput]).validate_python(json.load(f))
    log.info("Loaded topics", count=len(inputs))

    seeds = []
    if seeds_file:
        seeds = load_seeds(seeds_file)
        log.info("Loaded seed clusters", file=seeds_file, count=len(seeds))

    result = asyncio.run(
        cluster_triage_themes(
            inputs,
            tier=tier,
            threshold=threshold,
            seeds=seeds,
            client_factory=create_env_embeddings_client,
        )
    )
    result = apply_theme_label_overrides(
        result,
        ThemeLabelOverrideOptions(
            min_label_words=min_label_words,
            max_dominance_pct=max_dominance_pct,
        ),
    )

    result_file = os.path.join(output_dir, RESULT_FILENAME)
    with open(result_file, "w") as f:
        json.dump(result.model_dump(mode="json", by_alias=True), f, indent=2)
    log.info("Theme labels written", output=result_file, clusters=result.stats.cluster_count)

    stats = result.stats
    click.echo(
        f"✅ {len(result.items)} items → {stats.cluster_count} themes "
        f"({stats.unique_topics} unique topics, {stats.input_tokens} tokens). Results in {result_file}"
    )


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="JSON list of {candidate_id, topic, vector}")
@click.option("--output", "-o", "output_file", default=None, help="Write labels here instead of stdout")
@click.option("--threshold", type=float, default=None, help="Similarity threshold (default: THEME_CLUSTER_THRESHOLD or 0.75)")
def recluster(input_file: str, output_file: Optional[str], threshold: Optional[float]):
    """Re-cluster stored topic vectors without calling the embedding provider."""

    with open(input_file) as f:
        items = TypeAdapter(list[ThemeVectorInput]).validate_python(json.load(f))
    log.info("Loaded stored vectors", count=len(items))

    labels = cluster_items_with_existing_vectors(items, threshold=threshold)

    if output_file:
        with open(output_file, "w") as f:
            json.dump(labels, f, indent=2)
        click.echo(f"✅ Regenerated {len(labels)} theme labels → {output_file}")
    else:
        click.echo(json.dumps(labels, indent=2))


if __name__ == "__main__":
    cli()
