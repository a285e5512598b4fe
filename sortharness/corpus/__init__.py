"""Corpus generation: formula corpora and seeded random text."""

from sortharness.corpus.generator import Category, DatasetGenerator, line_at
from sortharness.corpus.freetext import (
    build_alphabet,
    generate_free_text,
    generate_random_lines,
    write_free_text_corpus,
    write_random_corpus,
)
