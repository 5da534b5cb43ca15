"""
Tests for the patch applier — parsing, exact application, all-or-nothing.
"""

import textwrap
from pathlib import Path

import pytest

from formula_runner.core.errors import PatchConflict, PatchError
from formula_runner.core.models.recipe import PatchSpec
from formula_runner.core.services.patching import apply_patch, apply_patch_spec, parse_patch

MAKEFILE = textwrap.dedent("""\
    xdirtest_LDADD = libkpathsea.la
    web2cdir = $(datarootdir)/texmf-dist/web2c
    dist_web2c_SCRIPTS = mktexdir mktexnam mktexupd
""")

MAKEFILE_PATCH = textwrap.dedent("""\
    diff --git a/texk/kpathsea/Makefile.in b/texk/kpathsea/Makefile.in
    --- a/texk/kpathsea/Makefile.in
    +++ b/texk/kpathsea/Makefile.in
    @@ -1,3 +1,3 @@
     xdirtest_LDADD = libkpathsea.la
    -web2cdir = $(datarootdir)/texmf-dist/web2c
    +web2cdir = $(datarootdir)/texlive-core/texbrew/web2c
     dist_web2c_SCRIPTS = mktexdir mktexnam mktexupd
""")

UPDMAP = textwrap.dedent("""\
    BEGIN {
      chomp($TEXMFROOT);
      unshift(@INC, "$TEXMFROOT/tlpkg");
    }
""")

UPDMAP_PATCH = textwrap.dedent("""\
    --- a/updmap.pl
    +++ b/updmap.pl
    @@ -2,3 +2,3 @@
       chomp($TEXMFROOT);
    -  unshift(@INC, "$TEXMFROOT/tlpkg");
    +  unshift(@INC, "HOMEBREW_PREFIX/share/texlive-core/tlpkg");
     }
""")


def _tree(root: Path, files: dict[str, str]) -> Path:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


# ── Parsing ─────────────────────────────────────────────────────────


class TestParsePatch:
    def test_single_file(self):
        (file_patch,) = parse_patch(MAKEFILE_PATCH)
        assert file_patch.target(1) == "texk/kpathsea/Makefile.in"
        assert file_patch.target(0) == "a/texk/kpathsea/Makefile.in"
        (hunk,) = file_patch.hunks
        assert hunk.old_start == 1
        assert len(hunk.old_lines) == 3
        assert hunk.new_lines[1] == "web2cdir = $(datarootdir)/texlive-core/texbrew/web2c"

    def test_count_defaults_to_one(self):
        (file_patch,) = parse_patch("--- a/x\n+++ b/x\n@@ -1 +1 @@\n-old\n+new\n")
        assert file_patch.hunks[0].old_count == 1
        assert file_patch.hunks[0].new_count == 1

    def test_blank_context_line(self):
        text = "--- a/x\n+++ b/x\n@@ -1,3 +1,3 @@\n-a\n+b\n\n c\n"
        (file_patch,) = parse_patch(text)
        assert file_patch.hunks[0].old_lines == ["a", "", "c"]

    def test_no_headers(self):
        with pytest.raises(PatchError, match="no file headers"):
            parse_patch("just some text\n")

    def test_truncated_hunk(self):
        with pytest.raises(PatchError, match="Truncated"):
            parse_patch("--- a/x\n+++ b/x\n@@ -1,3 +1,3 @@\n a\n")

    def test_garbage_in_hunk(self):
        with pytest.raises(PatchError, match="Unexpected line"):
            parse_patch("--- a/x\n+++ b/x\n@@ -1,2 +1,2 @@\n a\n?b\n")

    def test_strip_too_deep(self):
        (file_patch,) = parse_patch("--- a/x\n+++ b/x\n@@ -1 +1 @@\n-a\n+b\n")
        with pytest.raises(PatchError, match="strip"):
            file_patch.target(2)


# ── Application ─────────────────────────────────────────────────────


class TestApplyPatch:
    def test_exact_match_applies(self, tmp_path: Path):
        _tree(tmp_path, {"texk/kpathsea/Makefile.in": MAKEFILE})
        result = apply_patch(MAKEFILE_PATCH, tmp_path)

        assert result.status == "applied"
        assert result.files == ["texk/kpathsea/Makefile.in"]
        assert result.hunks == 1
        assert (tmp_path / "texk/kpathsea/Makefile.in").read_text() == MAKEFILE.replace(
            "texmf-dist/web2c", "texlive-core/texbrew/web2c"
        )

    def test_without_substitutions_text_is_verbatim(self, tmp_path: Path):
        _tree(tmp_path, {"updmap.pl": UPDMAP})
        apply_patch(UPDMAP_PATCH, tmp_path)
        assert 'unshift(@INC, "HOMEBREW_PREFIX/share/texlive-core/tlpkg");' in (tmp_path / "updmap.pl").read_text()

    def test_substitutions(self, tmp_path: Path):
        _tree(tmp_path, {"updmap.pl": UPDMAP})
        apply_patch(UPDMAP_PATCH, tmp_path, substitutions={"HOMEBREW_PREFIX": "/opt/tex"})
        assert 'unshift(@INC, "/opt/tex/share/texlive-core/tlpkg");' in (tmp_path / "updmap.pl").read_text()

    def test_context_mismatch_is_a_conflict(self, tmp_path: Path):
        drifted = MAKEFILE.replace("mktexupd", "mktexupd2")
        _tree(tmp_path, {"texk/kpathsea/Makefile.in": drifted})

        with pytest.raises(PatchConflict) as exc_info:
            apply_patch(MAKEFILE_PATCH, tmp_path)

        assert exc_info.value.file == "texk/kpathsea/Makefile.in"
        assert exc_info.value.hunk_index == 0
        assert (tmp_path / "texk/kpathsea/Makefile.in").read_text() == drifted

    def test_wrong_offset_is_a_conflict(self, tmp_path: Path):
        _tree(tmp_path, {"texk/kpathsea/Makefile.in": "# added line\n" + MAKEFILE})
        with pytest.raises(PatchConflict):
            apply_patch(MAKEFILE_PATCH, tmp_path)

    def test_whitespace_is_significant(self, tmp_path: Path):
        _tree(tmp_path, {"texk/kpathsea/Makefile.in": MAKEFILE.replace("web2cdir =", "web2cdir  =")})
        with pytest.raises(PatchConflict):
            apply_patch(MAKEFILE_PATCH, tmp_path)

    def test_all_or_nothing_across_files(self, tmp_path: Path):
        _tree(
            tmp_path,
            {
                "texk/kpathsea/Makefile.in": MAKEFILE,
                "updmap.pl": UPDMAP.replace("tlpkg", "other"),
            },
        )
        with pytest.raises(PatchConflict) as exc_info:
            apply_patch(MAKEFILE_PATCH + UPDMAP_PATCH, tmp_path)

        assert exc_info.value.file == "updmap.pl"
        assert (tmp_path / "texk/kpathsea/Makefile.in").read_text() == MAKEFILE
        leftovers = [p.name for p in (tmp_path / "texk/kpathsea").iterdir()]
        assert leftovers == ["Makefile.in"]

    def test_second_hunk_index_reported(self, tmp_path: Path):
        content = "a\nb\nc\nd\ne\nf\n"
        patch = textwrap.dedent("""\
            --- a/f.txt
            +++ b/f.txt
            @@ -1,2 +1,2 @@
            -a
            +A
             b
            @@ -5,2 +5,2 @@
             e
            -X
            +F
        """)
        _tree(tmp_path, {"f.txt": content})
        with pytest.raises(PatchConflict) as exc_info:
            apply_patch(patch, tmp_path)
        assert exc_info.value.hunk_index == 1
        assert (tmp_path / "f.txt").read_text() == content

    def test_multiple_hunks_apply(self, tmp_path: Path):
        patch = textwrap.dedent("""\
            --- a/f.txt
            +++ b/f.txt
            @@ -1,2 +1,3 @@
             a
            +a2
             b
            @@ -5,2 +6,1 @@
             e
            -f
        """)
        _tree(tmp_path, {"f.txt": "a\nb\nc\nd\ne\nf\n"})
        apply_patch(patch, tmp_path)
        assert (tmp_path / "f.txt").read_text() == "a\na2\nb\nc\nd\ne\n"

    def test_missing_target_is_a_conflict(self, tmp_path: Path):
        with pytest.raises(PatchConflict, match="does not exist"):
            apply_patch(MAKEFILE_PATCH, tmp_path)

    def test_target_outside_tree(self, tmp_path: Path):
        patch = "--- a/../escape\n+++ b/../escape\n@@ -1 +1 @@\n-a\n+b\n"
        with pytest.raises(PatchError, match="escapes"):
            apply_patch(patch, tmp_path / "tree")

    def test_creates_new_file(self, tmp_path: Path):
        patch = "--- /dev/null\n+++ b/new/file.txt\n@@ -0,0 +1,2 @@\n+one\n+two\n"
        result = apply_patch(patch, tmp_path)
        assert result.files == ["new/file.txt"]
        assert (tmp_path / "new" / "file.txt").read_text() == "one\ntwo\n"

    def test_no_newline_at_end_of_file(self, tmp_path: Path):
        patch = textwrap.dedent("""\
            --- a/f.txt
            +++ b/f.txt
            @@ -1,2 +1,2 @@
             a
            -b
            \\ No newline at end of file
            +B
            \\ No newline at end of file
        """)
        (tmp_path / "f.txt").write_text("a\nb")
        apply_patch(patch, tmp_path)
        assert (tmp_path / "f.txt").read_bytes() == b"a\nB"

    def test_preserves_file_mode(self, tmp_path: Path):
        _tree(tmp_path, {"updmap.pl": UPDMAP})
        (tmp_path / "updmap.pl").chmod(0o755)
        apply_patch(UPDMAP_PATCH, tmp_path)
        assert (tmp_path / "updmap.pl").stat().st_mode & 0o777 == 0o755


# ── Re-application ──────────────────────────────────────────────────


class TestAlreadyApplied:
    def test_second_run_is_skipped(self, tmp_path: Path):
        _tree(tmp_path, {"texk/kpathsea/Makefile.in": MAKEFILE})
        apply_patch(MAKEFILE_PATCH, tmp_path)
        patched = (tmp_path / "texk/kpathsea/Makefile.in").read_text()

        result = apply_patch(MAKEFILE_PATCH, tmp_path)

        assert result.status == "already_applied"
        assert (tmp_path / "texk/kpathsea/Makefile.in").read_text() == patched

    def test_half_applied_is_a_conflict(self, tmp_path: Path):
        _tree(tmp_path, {"texk/kpathsea/Makefile.in": MAKEFILE, "updmap.pl": UPDMAP})
        apply_patch(MAKEFILE_PATCH, tmp_path)

        with pytest.raises(PatchConflict) as exc_info:
            apply_patch(MAKEFILE_PATCH + UPDMAP_PATCH, tmp_path)
        assert exc_info.value.file == "texk/kpathsea/Makefile.in"

    def test_two_sections_for_one_file_rejected(self, tmp_path: Path):
        _tree(tmp_path, {"texk/kpathsea/Makefile.in": MAKEFILE})
        with pytest.raises(PatchError, match="more than one section"):
            apply_patch(MAKEFILE_PATCH + MAKEFILE_PATCH, tmp_path)
        assert (tmp_path / "texk/kpathsea/Makefile.in").read_text() == MAKEFILE


class TestApplyPatchSpec:
    def test_placeholder_filled_with_root(self, tmp_path: Path):
        tree = _tree(tmp_path / "build", {"updmap.pl": UPDMAP})
        spec = PatchSpec(text=UPDMAP_PATCH, placeholder="HOMEBREW_PREFIX")
        apply_patch_spec(spec, tree, tmp_path / "root")
        assert f'"{tmp_path / "root"}/share/texlive-core/tlpkg"' in (tree / "updmap.pl").read_text()

    def test_empty_placeholder_disables_substitution(self, tmp_path: Path):
        tree = _tree(tmp_path / "build", {"updmap.pl": UPDMAP})
        apply_patch_spec(PatchSpec(text=UPDMAP_PATCH, placeholder=""), tree, tmp_path / "root")
        assert "HOMEBREW_PREFIX/share" in (tree / "updmap.pl").read_text()


# ── texmf.cnf TEXMFROOT ─────────────────────────────────────────────


TEXMF_CNF = textwrap.dedent("""\
    % texmf.cnf -- runtime path configuration file for kpathsea.
    %
    TEXMFROOT = $SELFAUTOPARENT
    %
    TEXMFDIST = $TEXMFROOT/texmf-dist
""")

TEXMFROOT_PATCH = textwrap.dedent("""\
    --- a/texk/kpathsea/texmf.cnf
    +++ b/texk/kpathsea/texmf.cnf
    @@ -2,3 +2,3 @@
     %
    -TEXMFROOT = $SELFAUTOPARENT
    +TEXMFROOT = HOMEBREW_PREFIX/share
     %
""")


class TestTexmfRoot:
    def test_new_line_verbatim_and_rest_unchanged(self, tmp_path: Path):
        _tree(tmp_path, {"texk/kpathsea/texmf.cnf": TEXMF_CNF})

        result = apply_patch(TEXMFROOT_PATCH, tmp_path)

        assert result.status == "applied"
        assert (tmp_path / "texk/kpathsea/texmf.cnf").read_text() == TEXMF_CNF.replace(
            "TEXMFROOT = $SELFAUTOPARENT", "TEXMFROOT = HOMEBREW_PREFIX/share"
        )

    def test_different_old_line_leaves_file_byte_identical(self, tmp_path: Path):
        drifted = TEXMF_CNF.replace("TEXMFROOT = $SELFAUTOPARENT", "TEXMFROOT = something_else")
        _tree(tmp_path, {"texk/kpathsea/texmf.cnf": drifted})
        before = (tmp_path / "texk/kpathsea/texmf.cnf").read_bytes()

        with pytest.raises(PatchConflict) as exc_info:
            apply_patch(TEXMFROOT_PATCH, tmp_path)

        assert exc_info.value.file == "texk/kpathsea/texmf.cnf"
        assert (tmp_path / "texk/kpathsea/texmf.cnf").read_bytes() == before
        assert [p.name for p in (tmp_path / "texk/kpathsea").iterdir()] == ["texmf.cnf"]
