#!/usr/bin/env python3
"""
Example 1: Building answer context from course documents with Athena

This example demonstrates:
- Creating an Athena instance backed by a local SQLite store
- Retrieving the excerpts most relevant to a student's question
- Incremental re-indexing (unchanged files are not re-embedded)
- Degrading to full-text context when retrieval fails

Requirements:
    pip install athena-rag
    export OPENAI_API_KEY=sk-...
"""

import os
from pathlib import Path

# Ensure API key is set
if not os.environ.get("OPENAI_API_KEY"):
    print("⚠️  Set OPENAI_API_KEY environment variable")
    print("   export OPENAI_API_KEY=sk-...")
    exit(1)

from athena import Document, create_athena
from athena.logger import configure_logging

SYLLABUS = """
CS 201: Data Structures. Spring term.

Grading: homework 40%, midterm 25%, final project 35%.

Late policy: Late submissions lose 10% per day, up to three days. After three
days the submission receives no credit unless an extension was granted in
advance by the instructor.

Office hours are held on Mondays and Thursdays from 2pm to 4pm in room 310.
"""

SCHEDULE = """
Week 1: Arrays and linked lists. Week 2: Stacks and queues. Week 3: Hashing.
Week 4: Trees. Week 5: Balanced search trees. Week 6: Heaps.
Week 7: Midterm exam (in class). Week 8: Graphs. Week 9: Shortest paths.
Week 14: Final project demos.
"""


def main():
    configure_logging("INFO")

    print("=" * 60)
    print("Example 1: Course Question Answering Context")
    print("=" * 60)

    # ============================================================
    # Step 1: Create Athena instance
    # ============================================================
    print("\n📦 Creating Athena instance...")
    athena = create_athena(db_path="example_course.db")

    # ============================================================
    # Step 2: Prepare documents (as produced by the text extractor)
    # ============================================================
    documents = [
        Document.from_source("syllabus.pdf", SYLLABUS, url="https://canvas.example.edu/files/42/download"),
        Document("schedule.txt", SCHEDULE),
    ]
    print(f"   Prepared {len(documents)} documents")

    # ============================================================
    # Step 3: Retrieve context for a question
    # ============================================================
    question = "What happens if I submit homework two days late?"
    print(f"\n🔍 Question: '{question}'")
    result = athena.retrieve(question, documents)

    for excerpt in result.excerpts:
        print(f"   {excerpt.rank}. [{excerpt.score:.3f}] {excerpt.file_name}: {excerpt.text[:70]}...")
    print(f"   Indexed {result.stats['indexed']} files, reused {result.stats['reused']}")

    # ============================================================
    # Step 4: Ask again; nothing is re-embedded
    # ============================================================
    question = "When is the midterm?"
    print(f"\n🔍 Question: '{question}'")
    context = athena.build_context_or_full_text(question, documents)
    print(context[:300])

    # ============================================================
    # Step 5: Show statistics
    # ============================================================
    print("\n📊 Store Statistics:")
    stats = athena.get_stats()
    print(f"   Files: {stats['files']}, chunks: {stats['chunks']}")
    print(f"   Embedding model: {stats['embedding_model']}")
    print(f"   Cache hit rate: {stats['cache_stats']['hit_rate']:.1%}")

    # ============================================================
    # Cleanup
    # ============================================================
    athena.close()
    Path("example_course.db").unlink(missing_ok=True)

    print("\n✅ Example complete!")


if __name__ == "__main__":
    main()
