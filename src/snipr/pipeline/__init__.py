"""
Conversion Pipeline Components.

    - models.py: Jobs, feeds and feed entries
    - extractor.py: Article fetch and readable-text extraction
    - summarizer.py: Spoken synopsis generation
    - segmenter.py: Sentence-safe chunking for the speech engine
    - synthesis.py: Speech engines and the timeout-bounded synthesizer
    - artifacts.py: Audio persistence with bounded retry
    - feed.py: Feed publishing and RSS rendering
"""
