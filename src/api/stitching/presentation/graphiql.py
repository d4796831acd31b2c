"""GraphiQL page served on ``GET /graphql`` to browsers.

The page is a single HTML document loading GraphiQL from a CDN, so the
gateway does not ship static assets.
"""

import html
import json

_GRAPHIQL_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>%%TITLE%%</title>
  <style>
    body { height: 100%; margin: 0; width: 100%; overflow: hidden; }
    #graphiql { height: 100vh; }
  </style>
  <link rel="stylesheet" href="https://unpkg.com/graphiql@3/graphiql.min.css" />
  <script crossorigin src="https://unpkg.com/react@18/umd/react.production.min.js"></script>
  <script crossorigin src="https://unpkg.com/react-dom@18/umd/react-dom.production.min.js"></script>
  <script crossorigin src="https://unpkg.com/graphiql@3/graphiql.min.js"></script>
</head>
<body>
  <div id="graphiql">Loading...</div>
  <script>
    const fetcher = GraphiQL.createFetcher({ url: %%ENDPOINT%% });
    const root = ReactDOM.createRoot(document.getElementById("graphiql"));
    root.render(
      React.createElement(GraphiQL, {
        fetcher,
        defaultEditorToolsVisibility: true,
      })
    );
  </script>
</body>
</html>
"""


def render_graphiql(endpoint: str, title: str = "GraphiQL") -> str:
    """Build the GraphiQL page for ``endpoint``."""
    return _GRAPHIQL_TEMPLATE.replace("%%TITLE%%", html.escape(title)).replace(
        "%%ENDPOINT%%", json.dumps(endpoint)
    )
