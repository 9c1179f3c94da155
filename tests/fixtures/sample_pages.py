"""Sample Confluence storage format pages for testing.

These fixtures represent Confluence storage format (XHTML) content
with various elements including macros, tables, code blocks, etc.

XHTML format uses Confluence-specific namespaces:
- ac: namespace for Confluence macros
- ri: namespace for resource identifiers (images, attachments, users, pages)
"""

# Simple page with headings, paragraphs, and lists
SAMPLE_PAGE_SIMPLE = """
<h1>Test Page</h1>
<p>This is a simple test page with <strong>basic</strong> formatting.</p>
<h2>Section 1</h2>
<ul>
<li>Item 1</li>
<li>Item 2</li>
</ul>
<ol>
<li>First</li>
<li>Second</li>
</ol>
<hr/>
<p>Closing paragraph.</p>
"""

# Page with the macros the converter keeps as durable tokens
SAMPLE_PAGE_WITH_MACROS = """
<ac:structured-macro ac:name="toc" ac:schema-version="1"/>
<h1>Page with Macros</h1>
<ac:structured-macro ac:name="info" ac:schema-version="1">
<ac:rich-text-body>
<p>This is an informational panel.</p>
</ac:rich-text-body>
</ac:structured-macro>
<ac:structured-macro ac:name="code" ac:schema-version="1">
<ac:parameter ac:name="language">python</ac:parameter>
<ac:plain-text-body><![CDATA[def hello():
    print("Hello, <World>!")]]></ac:plain-text-body>
</ac:structured-macro>
<p>Owner: <ac:link><ri:user ri:account-id="557058:3f2a1b7c-9d4e-4f10-8a2b-1c3d5e7f9a0b"/><ac:plain-text-link-body><![CDATA[Jane Doe]]></ac:plain-text-link-body></ac:link>
state <ac:structured-macro ac:name="status"><ac:parameter ac:name="colour">Green</ac:parameter><ac:parameter ac:name="title">Done</ac:parameter></ac:structured-macro></p>
<p>See <ac:link><ri:page ri:space-key="ENG" ri:content-title="Release Plan"/><ac:plain-text-link-body><![CDATA[the plan]]></ac:plain-text-link-body></ac:link>.</p>
"""

# Page with tables, including a styled cell and a ragged row
SAMPLE_PAGE_WITH_TABLES = """
<h1>Tables</h1>
<table>
<tbody>
<tr><th><p>Name</p></th><th><p>State</p></th></tr>
<tr><td><p>Build</p></td><td data-highlight-colour="red"><p>Broken</p><p>since Monday</p></td></tr>
<tr><td><p>Deploy</p></td></tr>
</tbody>
</table>
"""

# Top-level nodes carrying node identifiers
SAMPLE_PAGE_WITH_NODE_IDS = (
    '<h1 data-node-id="h-1">Overview</h1>\n'
    '<p data-node-id="p-1">First paragraph.</p>\n'
    '<ac:structured-macro ac:name="code" data-node-id="c-1">'
    '<ac:plain-text-body><![CDATA[if a < b: <p data-node-id="fake">]]></ac:plain-text-body>'
    '</ac:structured-macro>\n'
    '<!-- <p data-node-id="p-2">commented out</p> -->\n'
    '<p data-node-id="p-2">Second <em>paragraph</em>.</p>\n'
    'Loose text\n'
)

# Layout and advanced macros that are reported but not converted
SAMPLE_PAGE_WITH_LAYOUT = """
<ac:layout>
<ac:layout-section ac:type="two_equal">
<ac:layout-cell><p>Left column</p></ac:layout-cell>
<ac:layout-cell>
<ac:structured-macro ac:name="expand">
<ac:parameter ac:name="title">More</ac:parameter>
<ac:rich-text-body><p>Hidden detail</p></ac:rich-text-body>
</ac:structured-macro>
</ac:layout-cell>
</ac:layout-section>
</ac:layout>
<ac:structured-macro ac:name="jira"><ac:parameter ac:name="key">ENG-1</ac:parameter></ac:structured-macro>
<table><tbody><tr><td colspan="2"><p>Merged</p></td></tr></tbody></table>
"""

# Fragment with every construct the round trip must preserve
SAMPLE_FRAGMENT_ROUND_TRIP = (
    '<table><tbody>'
    '<tr><th><p>Key</p></th><th><p>Value</p></th></tr>'
    '<tr><td data-highlight-colour="red"><p>x</p></td><td><p>y</p></td></tr>'
    '</tbody></table>'
    '<ac:structured-macro ac:name="code">'
    '<ac:parameter ac:name="language">bash</ac:parameter>'
    '<ac:plain-text-body><![CDATA[echo "a && b"]]></ac:plain-text-body>'
    '</ac:structured-macro>'
    '<ac:structured-macro ac:name="warning"><ac:rich-text-body><p>Careful now</p></ac:rich-text-body></ac:structured-macro>'
    '<p>Ping <ac:link><ri:user ri:account-id="abc-123"/></ac:link> '
    '<ac:structured-macro ac:name="status"><ac:parameter ac:name="title">In Progress</ac:parameter>'
    '<ac:parameter ac:name="colour">yellow</ac:parameter></ac:structured-macro></p>'
    '<ac:image ac:width="500" ac:align="center"><ri:attachment ri:filename="diagram.png"/>'
    '<ac:caption>Figure 1: Example</ac:caption></ac:image>'
)
