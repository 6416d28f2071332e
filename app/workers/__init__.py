"""Worker implementations for the video pipeline.

Workers claim videos from the database and orchestrate service layer
operations outside of any open transaction.
"""
