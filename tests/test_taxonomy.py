import json
import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from resume_patch.taxonomy import SynonymTaxonomy, default_taxonomy  # noqa: E402


class TaxonomyTests(unittest.TestCase):
    def test_variants_resolve_to_canonical_name(self):
        taxonomy = SynonymTaxonomy()
        self.assertEqual(taxonomy.canonical_name("  Postgres "), "PostgreSQL")
        self.assertIsNone(taxonomy.canonical_name("Unlisted Tool"))

    def test_canonical_key_merges_variants(self):
        taxonomy = default_taxonomy()
        self.assertEqual(taxonomy.canonical_key("k8s"), taxonomy.canonical_key("Kubernetes"))
        self.assertEqual(taxonomy.canonical_key("React.js"), "react")
        self.assertEqual(taxonomy.canonical_key("Unlisted  Tool"), "unlisted tool")

    def test_custom_synonyms_file(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "synonyms.json"
            path.write_text(json.dumps({"tf": "Terraform"}), encoding="utf-8")
            taxonomy = SynonymTaxonomy(path)
        self.assertEqual(taxonomy.canonical_key("TF"), "terraform")
        self.assertIsNone(taxonomy.canonical_name("k8s"))


if __name__ == "__main__":
    unittest.main()
