import os
import sys
import tempfile
import unittest
from unittest import mock

import protocheck


SAMPLE_SOURCE = """\
#include "hsk_ssc.h"
/* setup (must be called first); */
static unsigned char count = 0;

void hsk_ssc_init(const unsigned int baud,
                  const unsigned char config);

void hsk_ssc_init(const unsigned int baud, const unsigned char config) {
\tif (baud) {
\t\tcount = '{';
\t}
\treturn;
}

// trailing comment (x);
char *name(void)
{
\treturn "}{;";
}
"""


class StripSourceTests(unittest.TestCase):
    def test_bodies_comments_and_directives_are_elided(self) -> None:
        lines = protocheck.strip_source(SAMPLE_SOURCE)
        self.assertEqual(
            lines,
            [
                (3, "static unsigned char count = 0;"),
                (5, "void hsk_ssc_init(const unsigned int baud, const unsigned char config);"),
                (8, "void hsk_ssc_init(const unsigned int baud, const unsigned char config)"),
                (16, "char *name(void)"),
            ],
        )

    def test_literal_contents_are_elided(self) -> None:
        lines = protocheck.strip_source('const char *msg = "a; b(c);";\nchar c = \';\';\n')
        self.assertEqual(lines, [(1, 'const char *msg = "";'), (2, "char c = '';")])

    def test_multiline_directive_is_dropped(self) -> None:
        text = "#define CALL(x) \\\n    do_call(x);\nint foo(void);\n"
        self.assertEqual(protocheck.strip_source(text), [(3, "int foo(void);")])

    def test_storage_keywords_are_kept(self) -> None:
        lines = protocheck.strip_source("__sfr __at(0x80) P0; /* port 0 */\n")
        self.assertEqual(lines, [(1, "__sfr __at(0x80) P0;")])

    def test_whitespace_collapses_on_single_lines_too(self) -> None:
        lines = protocheck.strip_source("int  foo(int\tx)\n{\n}\n")
        self.assertEqual(lines, [(1, "int foo(int x)")])

    def test_wrapped_prototype_matches_tabbed_header(self) -> None:
        text = "int\tfoo(int a,\n        int b);\nint  foo(int a, int\tb)\n{\n}\n"
        ctx = protocheck.check_stream(protocheck.normalize_source("x.c", text))
        self.assertEqual(set(ctx.prototypes), {"foo"})
        self.assertEqual(set(ctx.definitions), {"foo"})


class NormalizeSourceTests(unittest.TestCase):
    def test_markers_precede_line_gaps(self) -> None:
        text = "int a(void);\n\n\nint b(void);\nint c(void);\n"
        self.assertEqual(
            list(protocheck.normalize_source("x.h", text)),
            ['#1 "x.h"', "int a(void);", '#4 "x.h"', "int b(void);", "int c(void);"],
        )

    def test_normalized_stream_round_trips_line_numbers(self) -> None:
        ctx = protocheck.RunContext()
        lines = list(protocheck.normalize_source("ssc.c", SAMPLE_SOURCE))
        with self.assertRaises(protocheck.FatalCondition) as caught:
            protocheck.check_stream(lines + ['#40 "ssc.c"', "char *name(void)"], ctx)
        self.assertEqual(caught.exception.code, protocheck.EXIT_DUPLICATE_DEFINITION)
        self.assertEqual(caught.exception.prior.line, 16)
        self.assertEqual(caught.exception.record.line, 40)


class BuiltinNormalizerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = self.temp_dir.name

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _write(self, name: str, text: str) -> str:
        path = os.path.join(self.root, name)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(text)
        return path

    def test_files_are_streamed_in_order(self) -> None:
        header = self._write("a.h", "int foo(void);\n")
        source = self._write("a.c", "int foo(void)\n{\n}\n")
        normalizer = protocheck.BuiltinNormalizer()
        with normalizer.open([header, source]) as stream:
            lines = list(stream)
        self.assertEqual(
            lines,
            [f'#1 "{header}"', "int foo(void);", f'#1 "{source}"', "int foo(void)"],
        )

    def test_missing_file_is_a_tool_error(self) -> None:
        normalizer = protocheck.BuiltinNormalizer()
        with self.assertRaises(protocheck.ProtoCheckError):
            with normalizer.open([os.path.join(self.root, "missing.c")]) as stream:
                list(stream)


# Helper printing a fixed normalized stream; source paths arrive as argv[1:].
_ECHO_HELPER = (
    "import sys\n"
    "for path in sys.argv[2:]:\n"
    "    print('#1 \"%s\"' % path)\n"
    "    print('int foo(void);')\n"
    "print('dialect=' + sys.argv[1])\n"
)


# Latin-1 bytes in a directive line; the stream must still decode.
_LATIN1_HELPER = (
    "import sys\n"
    "sys.stdout.buffer.write(b'#1 \"a.c\"\\n#error \\xdcberlauf\\nint foo(void);\\n')\n"
)


class ExternalNormalizerTests(unittest.TestCase):
    def _normalizer(self, script: str) -> protocheck.ExternalNormalizer:
        return protocheck.ExternalNormalizer(
            command=[sys.executable, "-c", script, "{dialect}"],
            dialect="c51",
        )

    def test_argv_substitutes_dialect_and_appends_paths(self) -> None:
        normalizer = protocheck.ExternalNormalizer(command=["cstrip", "-D{dialect}"], dialect="sdcc")
        self.assertEqual(normalizer.argv(["a.c", "b.c"]), ["cstrip", "-Dsdcc", "a.c", "b.c"])

    def test_stream_is_read_and_temp_file_removed(self) -> None:
        normalizer = self._normalizer(_ECHO_HELPER)
        with normalizer.open(["a.h"]) as stream:
            temp_path = stream.name
            self.assertTrue(os.path.exists(temp_path))
            lines = [line.rstrip("\n") for line in stream]
        self.assertEqual(lines, ['#1 "a.h"', "int foo(void);", "dialect=c51"])
        self.assertFalse(os.path.exists(temp_path))

    def test_temp_file_removed_on_fatal_condition(self) -> None:
        normalizer = self._normalizer(_ECHO_HELPER)
        temp_path = None
        with self.assertRaises(protocheck.FatalCondition) as caught:
            with normalizer.open(["a.h", "b.h"]) as stream:
                temp_path = stream.name
                protocheck.check_stream(stream)
        self.assertEqual(caught.exception.code, protocheck.EXIT_DUPLICATE_PROTOTYPE)
        self.assertEqual(caught.exception.prior.source_file, "a.h")
        self.assertEqual(caught.exception.record.source_file, "b.h")
        self.assertFalse(os.path.exists(temp_path))

    def test_failing_helper_is_a_tool_error(self) -> None:
        normalizer = self._normalizer("import sys; sys.stderr.write('boom'); sys.exit(3)")
        with tempfile.TemporaryDirectory() as scratch:
            with mock.patch.object(tempfile, "tempdir", scratch):
                with self.assertRaises(protocheck.ProtoCheckError) as caught:
                    with normalizer.open(["a.c"]):
                        self.fail("stream must not be yielded")
            self.assertEqual(os.listdir(scratch), [])
        self.assertIn("boom", str(caught.exception))

    def test_missing_helper_is_a_tool_error(self) -> None:
        normalizer = protocheck.ExternalNormalizer(command=["protocheck-no-such-helper"])
        with tempfile.TemporaryDirectory() as scratch:
            with mock.patch.object(tempfile, "tempdir", scratch):
                with self.assertRaises(protocheck.ProtoCheckError):
                    with normalizer.open(["a.c"]):
                        pass
            self.assertEqual(os.listdir(scratch), [])

    def test_temp_file_removed_on_keyboard_interrupt(self) -> None:
        normalizer = self._normalizer(_ECHO_HELPER)
        temp_path = None
        with self.assertRaises(KeyboardInterrupt):
            with normalizer.open(["a.h"]) as stream:
                temp_path = stream.name
                raise KeyboardInterrupt
        self.assertIsNotNone(temp_path)
        self.assertFalse(os.path.exists(temp_path))

    def test_unwritable_temp_dir_is_a_tool_error(self) -> None:
        with tempfile.TemporaryDirectory() as scratch:
            missing = os.path.join(scratch, "gone")
            with mock.patch.object(tempfile, "tempdir", missing):
                with self.assertRaises(protocheck.ProtoCheckError):
                    with self._normalizer(_ECHO_HELPER).open(["a.h"]):
                        pass

    def test_non_utf8_output_is_replaced(self) -> None:
        normalizer = self._normalizer(_LATIN1_HELPER)
        with normalizer.open(["a.c"]) as stream:
            ctx = protocheck.check_stream(stream)
        self.assertEqual(ctx.current_file, "a.c")
        self.assertEqual(set(ctx.prototypes), {"foo"})

    def test_non_utf8_stderr_is_a_tool_error(self) -> None:
        normalizer = self._normalizer(
            "import sys; sys.stderr.buffer.write(b'\\xdcberlauf'); sys.exit(2)"
        )
        with self.assertRaises(protocheck.ProtoCheckError) as caught:
            with normalizer.open(["a.c"]):
                pass
        self.assertIn("berlauf", str(caught.exception))


if __name__ == "__main__":
    unittest.main()
