"""
Interactive type-graph browser (GraphQL Voyager) served as a single page.

The page loads the standalone voyager bundle and feeds it the result of the
endpoint's introspection query, so it always shows the live schema.
"""

VOYAGER_VERSION = "2.1.0"
REACT_VERSION = "18.3.1"

_PAGE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>{title} - Voyager</title>
    <style>
      body {{ height: 100%; margin: 0; width: 100%; overflow: hidden; }}
      #voyager {{ height: 100vh; }}
    </style>
    <script src="https://cdn.jsdelivr.net/npm/react@{react}/umd/react.production.min.js"></script>
    <script src="https://cdn.jsdelivr.net/npm/react-dom@{react}/umd/react-dom.production.min.js"></script>
    <link rel="stylesheet" href="https://cdn.jsdelivr.net/npm/graphql-voyager@{voyager}/dist/voyager.css" />
    <script src="https://cdn.jsdelivr.net/npm/graphql-voyager@{voyager}/dist/voyager.standalone.js"></script>
  </head>
  <body>
    <div id="voyager">Loading...</div>
    <script type="module">
      const {{ voyagerIntrospectionQuery: query }} = GraphQLVoyager;
      const response = await fetch("{endpoint}", {{
        method: "post",
        headers: {{ Accept: "application/json", "Content-Type": "application/json" }},
        body: JSON.stringify({{ query }}),
        credentials: "omit",
      }});
      const introspection = await response.json();
      GraphQLVoyager.renderVoyager(document.getElementById("voyager"), {{
        introspection,
        displayOptions: {{ sortByAlphabet: false, skipRelay: true }},
      }});
    </script>
  </body>
</html>
"""


def render_voyager(endpoint: str, title: str = "Family Ledger Graph") -> str:
    """HTML for the voyager page pointed at ``endpoint``."""
    return _PAGE.format(endpoint=endpoint, title=title, react=REACT_VERSION, voyager=VOYAGER_VERSION)
