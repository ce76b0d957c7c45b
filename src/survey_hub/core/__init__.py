"""
Core data layer.

This package contains:
- csv_reader: tolerant CSV text reading shared by both parsers
- schema_parser: survey definition CSV -> QuestionDefinition list
- response_parser: raw responses CSV -> response records
- column_resolver: question id -> response column header
- index_mode: per-question guess of the raw code convention
- normalizer: raw codes -> canonical labels and synthetic sub-fields
- filter_engine: multi-question label filters
- data_loader: fetch CSV text from storage
- dataset: end-to-end load into a SurveyDataset
- analytics, metrics, table_view: downstream consumers of normalized records
- qualtrics_client: export client producing the two CSV artifacts
"""
