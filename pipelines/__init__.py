"""
Pipeline definitions for job collection.

Each source run flows through:
1. Detect - Compare scraped page structure with the last fingerprint
2. Collect - Fetch listings through the source adapter
3. Normalize - Canonicalize names, taxonomy, and scores
4. Validate - Attach issues; drop records with errors
5. Dedupe - Split into creates and updates
6. Persist - Write to the job store and the result log
"""
