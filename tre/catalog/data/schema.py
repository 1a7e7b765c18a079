"""SQLite DDL for catalog metadata persistence.

Defines studies, domains, vocabularies, variables, the asset/version
ledger and the provenance ledger. Ledger invariants live here:

- a partial unique index allows at most one latest version per asset;
- triggers make version numbers and transformations write-once;
- triggers reject a DataSet/DataFile row that does not match the
  owning asset's kind.

Used by CatalogRepoSQLite to ensure tables exist on first access.
"""

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS domains (
    domain_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    name          TEXT NOT NULL,
    uri           TEXT,
    description   TEXT NOT NULL DEFAULT ''
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_domains_name_uri
    ON domains(name, uri) WHERE uri IS NOT NULL;
CREATE UNIQUE INDEX IF NOT EXISTS ux_domains_name_null_uri
    ON domains(name) WHERE uri IS NULL;

CREATE TABLE IF NOT EXISTS studies (
    study_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    name          TEXT NOT NULL UNIQUE,
    description   TEXT NOT NULL DEFAULT '',
    study_type    TEXT NOT NULL DEFAULT '',
    created_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS study_domains (
    study_id      INTEGER NOT NULL REFERENCES studies(study_id)
                      ON DELETE CASCADE,
    domain_id     INTEGER NOT NULL REFERENCES domains(domain_id)
                      ON DELETE CASCADE,
    PRIMARY KEY (study_id, domain_id)
);

CREATE TABLE IF NOT EXISTS vocabularies (
    vocabulary_id INTEGER PRIMARY KEY AUTOINCREMENT,
    domain_id     INTEGER NOT NULL REFERENCES domains(domain_id),
    name          TEXT NOT NULL,
    description   TEXT NOT NULL DEFAULT '',
    UNIQUE(domain_id, name)
);

CREATE TABLE IF NOT EXISTS vocabulary_items (
    vocabulary_item_id INTEGER PRIMARY KEY AUTOINCREMENT,
    vocabulary_id INTEGER NOT NULL REFERENCES vocabularies(vocabulary_id)
                      ON DELETE CASCADE,
    value         INTEGER NOT NULL,
    code          TEXT NOT NULL,
    description   TEXT,
    UNIQUE(vocabulary_id, value, code)
);

CREATE TABLE IF NOT EXISTS variables (
    variable_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    domain_id     INTEGER NOT NULL REFERENCES domains(domain_id),
    name          TEXT NOT NULL,
    value_type    TEXT NOT NULL CHECK (value_type IN (
                      'integer', 'float', 'string', 'date', 'datetime',
                      'time', 'category', 'multiresponse')),
    value_format  TEXT,
    vocabulary_id INTEGER REFERENCES vocabularies(vocabulary_id),
    keyrole       TEXT NOT NULL DEFAULT 'none',
    description   TEXT,
    UNIQUE(domain_id, name)
);

CREATE TABLE IF NOT EXISTS assets (
    asset_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    study_id      INTEGER NOT NULL REFERENCES studies(study_id),
    name          TEXT NOT NULL,
    kind          TEXT NOT NULL CHECK (kind IN ('dataset', 'file')),
    description   TEXT NOT NULL DEFAULT '',
    created_at    TEXT NOT NULL,
    UNIQUE(study_id, name)
);

CREATE TABLE IF NOT EXISTS asset_versions (
    version_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    asset_id      INTEGER NOT NULL REFERENCES assets(asset_id),
    major         INTEGER NOT NULL CHECK (major >= 0),
    minor         INTEGER NOT NULL CHECK (minor >= 0),
    patch         INTEGER NOT NULL CHECK (patch >= 0),
    is_latest     INTEGER NOT NULL DEFAULT 0 CHECK (is_latest IN (0, 1)),
    note          TEXT NOT NULL DEFAULT '',
    doi           TEXT,
    created_at    TEXT NOT NULL,
    UNIQUE(asset_id, major, minor, patch)
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_asset_versions_latest
    ON asset_versions(asset_id) WHERE is_latest = 1;

CREATE TRIGGER IF NOT EXISTS trg_asset_versions_write_once
BEFORE UPDATE OF major, minor, patch, asset_id ON asset_versions
WHEN NEW.major IS NOT OLD.major
  OR NEW.minor IS NOT OLD.minor
  OR NEW.patch IS NOT OLD.patch
  OR NEW.asset_id IS NOT OLD.asset_id
BEGIN
    SELECT RAISE(ABORT, 'asset version numbers are write-once');
END;

CREATE TABLE IF NOT EXISTS datasets (
    dataset_id    INTEGER PRIMARY KEY
                      REFERENCES asset_versions(version_id)
                      ON DELETE CASCADE,
    lake_schema   TEXT NOT NULL,
    lake_table    TEXT NOT NULL
);

CREATE TRIGGER IF NOT EXISTS trg_datasets_kind
BEFORE INSERT ON datasets
WHEN (SELECT a.kind FROM asset_versions v
      JOIN assets a ON a.asset_id = v.asset_id
      WHERE v.version_id = NEW.dataset_id) IS NOT 'dataset'
BEGIN
    SELECT RAISE(ABORT, 'dataset rows require a dataset asset');
END;

CREATE TABLE IF NOT EXISTS datafiles (
    datafile_id   INTEGER PRIMARY KEY
                      REFERENCES asset_versions(version_id)
                      ON DELETE CASCADE,
    storage_uri   TEXT NOT NULL,
    digest        TEXT NOT NULL,
    digest_algorithm TEXT NOT NULL DEFAULT 'sha256',
    compressed    INTEGER NOT NULL DEFAULT 0,
    encrypted     INTEGER NOT NULL DEFAULT 0
);

CREATE TRIGGER IF NOT EXISTS trg_datafiles_kind
BEFORE INSERT ON datafiles
WHEN (SELECT a.kind FROM asset_versions v
      JOIN assets a ON a.asset_id = v.asset_id
      WHERE v.version_id = NEW.datafile_id) IS NOT 'file'
BEGIN
    SELECT RAISE(ABORT, 'datafile rows require a file asset');
END;

CREATE TABLE IF NOT EXISTS dataset_variables (
    dataset_id    INTEGER NOT NULL REFERENCES datasets(dataset_id)
                      ON DELETE CASCADE,
    variable_id   INTEGER NOT NULL REFERENCES variables(variable_id),
    keyrole       TEXT NOT NULL DEFAULT 'none',
    ordinal       INTEGER NOT NULL,
    PRIMARY KEY (dataset_id, variable_id)
);

CREATE TABLE IF NOT EXISTS transformations (
    transformation_id INTEGER PRIMARY KEY AUTOINCREMENT,
    type          TEXT NOT NULL CHECK (type IN (
                      'ingest', 'transform', 'entity', 'export',
                      'repository')),
    status        TEXT NOT NULL DEFAULT 'unverified',
    description   TEXT NOT NULL DEFAULT '',
    repo_url      TEXT,
    commit_hash   TEXT,
    script_path   TEXT,
    created_at    TEXT NOT NULL
);

CREATE TRIGGER IF NOT EXISTS trg_transformations_immutable
BEFORE UPDATE ON transformations
BEGIN
    SELECT RAISE(ABORT, 'transformations are immutable');
END;

CREATE TABLE IF NOT EXISTS transformation_inputs (
    transformation_id INTEGER NOT NULL
                      REFERENCES transformations(transformation_id),
    version_id    INTEGER NOT NULL REFERENCES asset_versions(version_id),
    PRIMARY KEY (transformation_id, version_id)
);

CREATE TABLE IF NOT EXISTS transformation_outputs (
    transformation_id INTEGER NOT NULL
                      REFERENCES transformations(transformation_id),
    version_id    INTEGER NOT NULL REFERENCES asset_versions(version_id),
    PRIMARY KEY (transformation_id, version_id)
);

CREATE INDEX IF NOT EXISTS idx_asset_versions_asset
    ON asset_versions(asset_id);
CREATE INDEX IF NOT EXISTS idx_transformation_inputs_version
    ON transformation_inputs(version_id);
CREATE INDEX IF NOT EXISTS idx_transformation_outputs_version
    ON transformation_outputs(version_id);
CREATE INDEX IF NOT EXISTS idx_variables_vocabulary
    ON variables(vocabulary_id);
"""
