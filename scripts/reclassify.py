#!/usr/bin/env python3
"""
Bulk Reclassification Script

Runs stored open questions through the classification service and applies
the results, exactly as the live queue would. Useful after changing the
classifier model or policy, or after running for a while in regex-only mode.

Usage:
    python scripts/reclassify.py [--dry-run] [--limit 100] [--chat-id ID]
"""

import sys
import argparse
import asyncio
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


async def reclassify(args) -> int:
    from dotenv import load_dotenv

    from chatwatch.common.config import load_config
    from chatwatch.common.llm_client import LLMClient
    from chatwatch.common.schemas import QuestionStatus
    from chatwatch.monitor.classification_queue import ClassificationJob, ClassificationQueue
    from chatwatch.monitor.lifecycle import QuestionLifecycle
    from chatwatch.monitor.store import JsonQuestionStore

    load_dotenv()
    config = load_config()

    store = JsonQuestionStore(args.store or config.server.store_path)
    questions = store.list_questions(status=QuestionStatus.OPEN, chat_id=args.chat_id)
    if args.limit:
        questions = questions[:args.limit]

    print(f"[Reclassify] Found {len(questions)} open questions")
    if not questions:
        return 0

    if args.dry_run:
        print("[Reclassify] DRY RUN - no changes will be made")
        for question in questions:
            print(f"  {question.id}: {question.question_type.value} \"{question.body[:60]}\"")
        return 0

    model = config.llm.openai_model if config.llm.provider == "openai" else config.llm.anthropic_model
    client = LLMClient(
        provider=config.llm.provider,
        model=model,
        anthropic_api_key=config.llm.anthropic_api_key or None,
        openai_api_key=config.llm.openai_api_key or None,
    )
    queue = ClassificationQueue.from_config(config.queue, client)
    if not queue.enabled:
        print("[Reclassify] ERROR: Classification service not available (check API key)")
        return 1

    jobs = [
        ClassificationJob(
            id=question.id,
            text=question.body,
            sender=question.sender,
            chat_name=question.chat_name or question.chat_id,
            is_group_chat=question.chat_id.endswith("@g.us"),
        )
        for question in questions
    ]

    print(f"[Reclassify] Classifying in batches of {queue.batch_size} "
          f"(1 request every {queue.rate_limit_delay_s:.0f}s)...")
    results = await queue.classify_batch(jobs)

    lifecycle = QuestionLifecycle(store, tracking=config.tracking)
    updated = 0
    dismissed = 0
    skipped = 0

    for job, result in zip(jobs, results):
        if result is None:
            skipped += 1
            continue
        question = lifecycle.apply_ai_classification(job.id, result)
        if question is None:
            skipped += 1
            continue
        updated += 1
        if question.status == QuestionStatus.DISMISSED:
            dismissed += 1
            print(f"[Reclassify] Dismissed {job.id} ({result.intent.value}): \"{job.text[:40]}\"")

    print(f"[Reclassify] Complete: {updated} updated, {dismissed} dismissed, {skipped} unclassified")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Reclassify stored open questions with the classification service")
    parser.add_argument("--dry-run", action="store_true", help="List what would be reclassified without calling the service")
    parser.add_argument("--limit", type=int, default=0, help="Maximum number of questions to reclassify (0 = all)")
    parser.add_argument("--chat-id", type=str, default=None, help="Only reclassify questions from this chat")
    parser.add_argument("--store", type=str, default=None, help="Question store path (default from config)")
    args = parser.parse_args()

    sys.exit(asyncio.run(reclassify(args)))


if __name__ == "__main__":
    main()
