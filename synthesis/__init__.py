"""
School-Based Project Synthesis Pipeline
synthesis/

Steps:
1. Rubric Schema       — validate / merge-patch the six-stage content
2. Template Resolver   — template id → StyleSheet (catalog → built-in → default)
3. Layout Engine       — greedy word wrap + pagination onto A4 pages
4. Document Compiler   — blocks → layout → ReportLab PDF bytes
5. Artifact Store      — write-once PDF files under PDF_UPLOADS_DIR
6. Dispatcher          — tool outcomes → {project, debit, usage} in one transaction
"""
