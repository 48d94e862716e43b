"""Tests for the directive parser."""

from typing import TYPE_CHECKING

import pytest

from pytest_proctest.errors import ParseError
from pytest_proctest.schema import (
    CliAction,
    CodeAction,
    ConfigurationRequirement,
    EnvironmentRequirement,
    FileAction,
    ShellAction,
    SoftwareRequirement,
    TabsNode,
    UiAction,
)

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_proctest.core import DocumentParser


TEST_PROCEDURE = '''
Install the Tool
================

.. prerequisites::

   .. software:: node
      :version: >=18

.. procedure::
   :style: normal

   .. step:: Create a project directory

      Run the following command:

      .. code-block:: bash

         mkdir proj

   .. step:: Configure the project

      1. Create a file named ``app.py``:

         .. code-block:: python

            print('hello')

      #. Run the file from your IDE.

      #. Click :guilabel:`Save`.
'''

TEST_TABS = '''
.. procedure:: Install the driver

   .. step:: Install

      .. tabs-drivers::

         .. tab:: Python
            :tabid: python

            .. code-block:: bash

               pip install driver

         .. tab:: Node.js

            .. code-block:: bash

               npm install driver

   .. step:: Verify

      .. code-block:: bash

         echo done
'''

TEST_REFERENCES = '''
See :ref:`install <install-guide>` and `Docs <https://example.com/docs>`__.
Use {+version+} from https://example.org/page.

Click :guilabel:`Save`.
'''


def test_procedure_structure(parser: 'DocumentParser') -> None:
    """Procedures, steps, sub-steps and their actions are parsed."""
    document = parser.parse(TEST_PROCEDURE, 'install.rst')

    assert len(document.procedures) == 1
    procedure = document.procedures[0]

    assert procedure.title == 'Install the Tool'
    assert procedure.location.line == 10

    requirement, = procedure.prerequisites.requirements
    assert isinstance(requirement, SoftwareRequirement)
    assert requirement.name == 'node'
    assert requirement.version == '>=18'

    first, second = procedure.steps
    assert first.number == 1
    assert first.headline == 'Create a project directory'

    action, = first.actions
    assert isinstance(action, ShellAction)
    assert action.command == 'mkdir proj'
    assert action.location.filename == 'install.rst'

    assert second.actions == ()
    assert [substep.label for substep in second.substeps] == ['1', '2', '3']

    created, = second.substeps[0].actions
    assert isinstance(created, FileAction)
    assert created.operation == 'create'
    assert created.path == 'app.py'
    assert created.language == 'python'
    assert created.content == "print('hello')"

    run, = second.substeps[1].actions
    assert isinstance(run, CodeAction)
    assert run.execution_mode == 'ide'
    assert run.path == 'app.py'

    click, = second.substeps[2].actions
    assert isinstance(click, UiAction)
    assert click.operation == 'click'
    assert click.target == 'Save'


def test_alphabetic_substeps(parser: 'DocumentParser') -> None:
    """Letter markers produce alphabetic sub-steps."""
    document = parser.parse(
        '.. procedure::\n'
        '\n'
        '   .. step:: Pick\n'
        '\n'
        '      a. First.\n'
        '      b. Second.\n'
    )

    step, = document.procedures[0].steps
    assert [substep.label for substep in step.substeps] == ['a', 'b']
    assert all(substep.style == 'alpha' for substep in step.substeps)


@pytest.mark.parametrize('content, title', (
    pytest.param('.. procedure:: Deploy\n', 'Deploy', id='argument'),
    pytest.param('.. procedure::\n   :title: Upgrade\n', 'Upgrade', id='option'),
    pytest.param('Setup\n-----\n\n.. procedure::\n', 'Setup', id='heading'),
    pytest.param('.. procedure::\n', 'Procedure 1', id='fallback'),
))
def test_procedure_title(parser: 'DocumentParser', content: str, title: str) -> None:
    """Procedure titles come from the option, argument or heading."""
    document = parser.parse(content)

    assert document.procedures[0].title == title


def test_option_after_content(parser: 'DocumentParser') -> None:
    """An option line following directive content is a parse error."""
    content = (
        '.. procedure::\n'
        '\n'
        '   .. step:: Broken\n'
        '\n'
        '      .. code-block:: python\n'
        '\n'
        "         print('x')\n"
        '         :caption: app.py\n'
    )

    with pytest.raises(ParseError, match='appears after directive content') as error:
        parser.parse(content, 'broken.rst')

    assert error.value.context['filename'] == 'broken.rst'
    assert error.value.context['line_num'] == 8


def test_empty_code_block(parser: 'DocumentParser') -> None:
    """A code block without content is a parse error."""
    with pytest.raises(ParseError, match='has no content'):
        parser.parse('.. code-block:: python\n\nSome text.\n')


def test_tabs(parser: 'DocumentParser') -> None:
    """Tabs keep their group, identifiers and own content."""
    document = parser.parse(TEST_TABS)

    first, second = document.procedures[0].steps
    tabs, = first.children
    assert isinstance(tabs, TabsNode)
    assert tabs.group == 'drivers'
    assert tabs.identifiers == ('python', 'node-js')
    assert [tab.title for tab in tabs.tabs] == ['Python', 'Node.js']

    assert [action.command for action in first.actions] == ['pip install driver', 'npm install driver']
    assert [action.command for action in second.actions] == ['echo done']


def test_duplicate_tab_identifier(parser: 'DocumentParser') -> None:
    """Two tabs of a group may not share an identifier."""
    content = (
        '.. tabs::\n'
        '\n'
        '   .. tab:: Shell\n'
        '\n'
        '      One.\n'
        '\n'
        '   .. tab:: Shell\n'
        '\n'
        '      Two.\n'
    )

    with pytest.raises(ParseError, match='Duplicate tab identifier'):
        parser.parse(content)


def test_prerequisites_inside_procedure(parser: 'DocumentParser') -> None:
    """Requirement directives and bullet items become requirements."""
    document = parser.parse(
        '.. procedure::\n'
        '\n'
        '   .. prerequisites::\n'
        '\n'
        '      .. environment:: API_KEY\n'
        '\n'
        '      .. software:: docker\n'
        '         :optional:\n'
        '\n'
        '      - A running cluster.\n'
        '\n'
        '   .. step:: Use it\n'
        '\n'
        '      Done.\n'
    )

    environment, software, configuration = document.procedures[0].prerequisites.requirements

    assert isinstance(environment, EnvironmentRequirement)
    assert environment.variable == 'API_KEY'
    assert not environment.optional

    assert isinstance(software, SoftwareRequirement)
    assert software.optional

    assert isinstance(configuration, ConfigurationRequirement)
    assert configuration.description == 'A running cluster.'


def test_prerequisites_apply_to_next_procedure(parser: 'DocumentParser') -> None:
    """Prerequisites outside a procedure gate the next one only."""
    document = parser.parse(
        '.. procedure:: First\n'
        '\n'
        '.. prerequisites::\n'
        '\n'
        '   .. environment:: TOKEN\n'
        '\n'
        '.. procedure:: Second\n'
        '\n'
        '.. procedure:: Third\n'
    )

    first, second, third = document.procedures
    assert first.prerequisites is None
    assert second.prerequisites.requirements[0].variable == 'TOKEN'
    assert third.prerequisites is None


def test_unknown_and_ignored_directives(parser: 'DocumentParser') -> None:
    """Unknown directives are flattened, ignored ones dropped."""
    document = parser.parse(
        '.. procedure::\n'
        '\n'
        '   .. step:: Run\n'
        '\n'
        '      .. note::\n'
        '\n'
        '         .. code-block:: bash\n'
        '\n'
        '            atlas clusters list\n'
        '\n'
        '      .. output::\n'
        '\n'
        '         .. code-block:: bash\n'
        '\n'
        '            rm -rf /\n'
    )

    action, = document.procedures[0].steps[0].actions
    assert isinstance(action, CliAction)
    assert action.program == 'atlas'


def test_literal_include(parser: 'DocumentParser', tmp_path: 'Path') -> None:
    """Literal includes read code between markers with its language."""
    (tmp_path / 'example.py').write_text(
        'import os\n'
        '# start\n'
        "print('hi')\n"
        '# end\n'
    )

    document = parser.parse(
        '.. procedure::\n'
        '\n'
        '   .. step:: Run\n'
        '\n'
        '      .. literalinclude:: example.py\n'
        '         :start-after: # start\n'
        '         :end-before: # end\n',
        base_dir=tmp_path,
    )

    action, = document.procedures[0].steps[0].actions
    assert isinstance(action, CodeAction)
    assert action.language == 'python'
    assert action.code == "print('hi')"


def test_include_inside_step(parser: 'DocumentParser', tmp_path: 'Path') -> None:
    """Included content takes part in the including step."""
    (tmp_path / 'command.rst').write_text(
        '.. code-block:: sh\n'
        '\n'
        '   touch ready\n'
    )
    source = tmp_path / 'page.rst'
    source.write_text(
        '.. procedure::\n'
        '\n'
        '   .. step:: Prepare\n'
        '\n'
        '      .. include:: command.rst\n'
        '\n'
        '      Then continue.\n'
    )

    document = parser.parse_file(source)

    step, = document.procedures[0].steps
    action, = step.actions
    assert action.command == 'touch ready'
    assert action.location.filename == str(tmp_path / 'command.rst')


def test_references(parser: 'DocumentParser') -> None:
    """Inline roles, links and substitutions are collected per line."""
    document = parser.parse(TEST_REFERENCES)

    assert [reference.kind for reference in document.references] == [
        'ref', 'link', 'substitution', 'link', 'guilabel',
    ]
    assert document.references[0].target == 'install-guide'
    assert document.references[0].text == 'install'
    assert document.references[2].target == 'version'
    assert document.urls == ('https://example.com/docs', 'https://example.org/page')
