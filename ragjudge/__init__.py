"""ragjudge: LLM-as-a-judge scoring and relationship discovery for RAG datasets."""
