"""
Ranking queries against the entity store.

search() — free-text relevance ranking
───────────────────────────────────────
  1. Split the query on runs of spaces and '/' into terms (empty dropped).
  2. Recall: any entity whose addr OR description contains ANY term
     (case-insensitive substring).
  3. Collapse identical rows (GROUP BY every projected column).
  4. Signals per candidate:
       type_rank_fudge     1 for top-level provider/module outside the
                           terraform-providers/ and opentofu/ namespaces
       warnings_rank_fudge 0 (warning penalty disabled)
       popularity_rank     popularity / max(popularity over candidates)
       title_sim           similarity(addr, query)
       name_sim            similarity(link_variables->>'name', query)
       description_sim     similarity(description, query)
  5. rank = (type_rank_fudge + warnings_rank_fudge + 1)
          * (popularity_rank + title_sim + name_sim + description_sim / 0.5)
  6. Top 5 of the provider* family and top 5 of the module* family.
  7. Providers first, then modules, each bucket by rank descending.

Similarities are pg_trgm trigram scores in [0, 1].

top_providers() — most popular providers, one row per (popularity, title),
hashicorp/ addresses winning ties.
"""
import logging

from registry_search.clients.db_client import QueryableConnection
from registry_search.schemas import SearchResult, TopProvider

logger = logging.getLogger(__name__)

BUCKET_SIZE = 5

SEARCH_SQL = """
WITH search_terms AS (
  SELECT term
  FROM unnest(regexp_split_to_array($1::text, '[ /]+')) AS term
  WHERE term <> ''
),
candidates AS (
  SELECT e.id, e.last_updated, e.type, e.addr, e.version, e.title,
    e.description, e.link_variables, e.popularity, e.warnings
  FROM entities e
  JOIN search_terms st
    ON e.addr ILIKE '%' || st.term || '%'
    OR e.description ILIKE '%' || st.term || '%'
  GROUP BY e.id, e.last_updated, e.type, e.addr, e.version, e.title,
    e.description, e.link_variables, e.popularity, e.warnings
),
signals AS (
  SELECT c.*,
    CASE
      WHEN c.type IN ('provider', 'module')
        AND c.addr NOT LIKE 'terraform-providers/%'
        AND c.addr NOT LIKE 'opentofu/%'
      THEN 1 ELSE 0
    END AS type_rank_fudge,
    -- warning penalty disabled:
    -- CASE WHEN c.warnings > 0 THEN -1 ELSE 0 END
    0 AS warnings_rank_fudge,
    c.popularity::float
      / COALESCE(NULLIF(MAX(c.popularity) OVER (), 0), 1) AS popularity_rank,
    similarity(c.addr, $1::text) AS title_sim,
    COALESCE(similarity(c.description, $1::text), 0) AS description_sim,
    COALESCE(similarity(c.link_variables->>'name', $1::text), 0) AS name_sim
  FROM candidates c
),
scored AS (
  SELECT s.*,
    (s.type_rank_fudge + s.warnings_rank_fudge + 1)
      * (s.popularity_rank + s.title_sim + s.name_sim + s.description_sim / 0.5)
      AS rank_score
  FROM signals s
),
providers AS (
  SELECT 0 AS bucket, sc.*
  FROM scored sc
  WHERE sc.type LIKE 'provider%'
  ORDER BY sc.rank_score DESC
  LIMIT $2::int
),
modules AS (
  SELECT 1 AS bucket, sc.*
  FROM scored sc
  WHERE sc.type LIKE 'module%'
  ORDER BY sc.rank_score DESC
  LIMIT $2::int
)
SELECT id, last_updated, type, addr, version, title, description,
  link_variables, popularity, warnings, rank_score
FROM (
  SELECT * FROM providers
  UNION ALL
  SELECT * FROM modules
) ranked
ORDER BY bucket, rank_score DESC
"""

TOP_PROVIDERS_SQL = """
SELECT addr, version, popularity
FROM (
  SELECT DISTINCT ON (popularity, lower(title))
    addr, version, popularity, lower(title) AS sort_title
  FROM entities
  WHERE type = 'provider'
  ORDER BY popularity DESC, lower(title), (addr NOT LIKE 'hashicorp/%')
) deduped
ORDER BY popularity DESC, sort_title, (addr NOT LIKE 'hashicorp/%')
LIMIT $1::int
"""


async def search(
    conn: QueryableConnection,
    query: str,
    bucket_size: int = BUCKET_SIZE,
) -> list[SearchResult]:
    """Rank entities for `query`: up to `bucket_size` providers, then modules."""
    rows = await conn.query(SEARCH_SQL, [query, bucket_size])
    logger.debug("search %r → %d rows", query, len(rows))
    return [SearchResult.model_validate(row) for row in rows]


async def top_providers(conn: QueryableConnection, limit: int) -> list[TopProvider]:
    """Most popular providers, capped at `limit` (validated upstream)."""
    rows = await conn.query(TOP_PROVIDERS_SQL, [limit])
    return [TopProvider.model_validate(row) for row in rows]
