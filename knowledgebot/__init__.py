"""Knowledge bot backend: document ingestion, Q&A retrieval and chat answers."""
