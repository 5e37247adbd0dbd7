"""In-browser GraphQL IDEs pointed at the query endpoint."""

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

router = APIRouter()

GRAPHIQL_HTML = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>GraphiQL</title>
    <link rel="stylesheet" href="https://unpkg.com/graphiql@3/graphiql.min.css" />
    <style>body {{ margin: 0; height: 100vh; }} #graphiql {{ height: 100vh; }}</style>
  </head>
  <body>
    <div id="graphiql">Loading...</div>
    <script crossorigin src="https://unpkg.com/react@18/umd/react.production.min.js"></script>
    <script crossorigin src="https://unpkg.com/react-dom@18/umd/react-dom.production.min.js"></script>
    <script crossorigin src="https://unpkg.com/graphiql@3/graphiql.min.js"></script>
    <script>
      const fetcher = GraphiQL.createFetcher({{ url: "{endpoint}" }});
      ReactDOM.createRoot(document.getElementById("graphiql")).render(
        React.createElement(GraphiQL, {{ fetcher }})
      );
    </script>
  </body>
</html>
"""

PLAYGROUND_HTML = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>GraphQL Playground</title>
    <link rel="stylesheet" href="https://cdn.jsdelivr.net/npm/graphql-playground-react/build/static/css/index.css" />
    <script src="https://cdn.jsdelivr.net/npm/graphql-playground-react/build/static/js/middleware.js"></script>
  </head>
  <body>
    <div id="root"></div>
    <script>
      window.addEventListener("load", function () {{
        GraphQLPlayground.init(document.getElementById("root"), {{ endpoint: "{endpoint}" }});
      }});
    </script>
  </body>
</html>
"""


def render_ide(template: str, endpoint: str = "/graphql") -> str:
    return template.format(endpoint=endpoint)


@router.get("/graphiql", response_class=HTMLResponse)
async def graphiql() -> str:
    return render_ide(GRAPHIQL_HTML)


@router.get("/playground", response_class=HTMLResponse)
async def playground() -> str:
    return render_ide(PLAYGROUND_HTML)
