"""
NORA revision engine.

Active-recall revision sessions over study documents: timed study, pause and
recall phases, AI comparison of the recall against the summary, bounded drill
iterations and a mastery score on completion.
"""

__version__ = "1.0.0"
