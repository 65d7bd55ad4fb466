"""analyze command: extract tasks from a pull request's review comments."""

from __future__ import annotations

import click
from github import GithubException
from rich.console import Console

from prtask_core.comments import select_actionable
from prtask_core.gh.pull_request import fetch_review_comments, get_pull, get_repo
from prtask_core.pipeline import Pipeline, PipelineResult

console = Console()


def _print_result(result: PipelineResult, pr_number: int) -> None:
    console.print(
        f"\n[green]PR #{pr_number}: {len(result.tasks)} task(s) stored, {result.created} new.[/green]"
        f"  [dim]({result.analyzed} comment(s) analyzed, {result.processed - result.analyzed} from cache)[/dim]"
    )
    if result.orphaned:
        console.print(f"[dim]{result.orphaned} task(s) no longer match a comment and were left as they are.[/dim]")
    if result.failed:
        console.print(f"[yellow]{len(result.failed)} comment(s) could not be turned into tasks:[/yellow]")
        for (review_id, comment_id), reason in result.failed.items():
            console.print(f"  - comment {comment_id} (review {review_id}): {reason}")
        console.print("[yellow]They were not cached; the next run will retry them.[/yellow]")


@click.command("analyze")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--refresh", is_flag=True, help="Ignore cached extractions and analyze every comment again.")
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option("--batch-size", type=click.IntRange(min=1), default=None, help="Comments per analysis call.")
@click.option(
    "--max-batches",
    type=click.IntRange(min=0),
    default=None,
    help="Stop after this many batches (0 = no limit). Re-run to continue.",
)
@click.pass_context
def analyze_cmd(
    ctx,
    repo: str,
    pr_number: int,
    refresh: bool,
    model: str | None,
    batch_size: int | None,
    max_batches: int | None,
):
    """Fetch review comments for a PR and merge the extracted tasks.

    Safe to re-run at any time: comments analysed before are served from
    the cache, and task statuses you have set are never overwritten.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when using --model anthropic
      OPENAI_API_KEY       Required when using --model openai
    """
    from prtask_cli.auth import resolve_github_token

    config = dict(ctx.obj["config"])
    for key, value in {"model": model, "batch_size": batch_size, "max_batches": max_batches}.items():
        if value is not None:
            config[key] = value

    token = resolve_github_token()
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )

    if config["model"] == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
    if config["model"] == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")

    try:
        this_pr = get_pull(get_repo(repo, token=token), pr_number)
        all_comments = fetch_review_comments(this_pr)
    except GithubException as e:
        raise click.ClickException(f"Could not fetch PR #{pr_number} from {repo}: {e}")

    comments = select_actionable(all_comments)
    skipped = len(all_comments) - len(comments)
    console.print(
        f"Fetched {len(all_comments)} comment(s) from {repo}#{pr_number}"
        + (f", {skipped} resolved or empty skipped" if skipped else "")
        + "."
    )

    pipeline = Pipeline.from_config(ctx.obj["store"], config)

    def _progress(processed: int, total: int) -> None:
        console.print(f"  [[{processed}/{total}]] comments processed")

    result = pipeline.extract_and_merge(str(pr_number), comments, force_refresh=refresh, on_progress=_progress)
    _print_result(result, pr_number)

    if result.error is not None:
        console.print(f"[yellow]{result.error.resume_hint()}[/yellow]")
        raise click.ClickException(str(result.error))
    if result.batch_limited:
        console.print(
            f"[cyan]Batch limit reached at {result.processed}/{result.total}. "
            f"Continue with: prtask analyze --repo {repo} --pr {pr_number}[/cyan]"
        )
