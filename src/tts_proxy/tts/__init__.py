"""
Speech synthesis pipeline.

    - chunker.py: text splitting into bounded units
    - signing.py: request signatures for the token endpoint
    - credentials.py: shared backend credential with singleflight refresh
    - client.py: SSML building and single-unit synthesis
    - scheduler.py: ordered, batched concurrent fan-out
    - assembler.py: buffered and streaming response assembly
"""
