"""
Chart document renderer.

Weaves narrative prose, tabular data manipulation and charts into one
static HTML page:
  - a statistical layer loads columnar files and exports tables by name
  - a charting layer turns those tables into Chart.js configurations
  - a renderer embeds everything in a single page that draws the charts
    with Chart.js when it loads

Apart from the generation timestamp, the output depends only on the input
data files and the document configuration.
"""

__version__ = "0.1.0"
