"""Unit tests for factory.api (Factory, Registration)."""

import logging
import threading

import msgpack
import pytest

from extpack import (
    ExtClassError,
    Factory,
    HandlerResolutionError,
    Registration,
    TagRangeError,
)
from sample_types import (
    Label,
    Moment,
    Opaque,
    Point,
    pack_point_swapped,
    unpack_point_swapped,
)


def _snapshot(factory: Factory) -> tuple[dict, dict]:
    return factory.packer_registry.to_dict(), factory.unpacker_registry.to_dict()


class TestFactoryCreation:
    """Tests for Factory construction and defaults."""

    def test_starts_empty(self, factory: Factory) -> None:
        """A new factory has no registrations and no default options."""
        assert len(factory.packer_registry) == 0
        assert len(factory.unpacker_registry) == 0
        assert factory.packer_options == {}
        assert factory.unpacker_options == {}

    def test_rejects_arguments(self) -> None:
        """Factory takes no arguments; extra ones are an arity error."""
        Factory()
        with pytest.raises(TypeError):
            Factory({})
        with pytest.raises(TypeError):
            Factory(packer_options={})


class TestRegisterType:
    """Tests for register_type validation and effects."""

    @pytest.mark.parametrize("tag", [0, 1, 127, -128])
    def test_simple_form_installs_both_directions(self, factory: Factory, tag: int) -> None:
        """lookup by tag gives an unpacker and lookup by class gives (tag, packer)."""
        factory.register_type(tag, Point)

        encode = factory.packer_registry.lookup(Point)
        assert encode is not None
        assert encode.tag == tag
        assert encode.pack(Point(1, 2)) == Point(1, 2).to_extension_bytes()

        decode = factory.unpacker_registry.lookup(tag)
        assert decode is not None
        assert decode.unpack == Point.from_extension_bytes
        assert decode.ext_class is Point

    @pytest.mark.parametrize("tag", [-129, 128, 200, 10_000])
    def test_out_of_range_tag_leaves_registries_unchanged(
        self, factory: Factory, tag: int
    ) -> None:
        """Tags outside the signed byte range are rejected before any change."""
        factory.register_type(1, Point)
        before = _snapshot(factory)
        with pytest.raises(TagRangeError):
            factory.register_type(tag, Label, {"packer": "encode", "unpacker": "parse"})
        assert _snapshot(factory) == before

    def test_range_error_on_200(self, factory: Factory) -> None:
        """The error names the offending tag."""
        before = _snapshot(factory)
        with pytest.raises(TagRangeError, match="200"):
            factory.register_type(200, Point)
        assert _snapshot(factory) == before

    def test_rejects_non_class(self, factory: Factory) -> None:
        """An instance where a class is expected is an argument type error."""
        with pytest.raises(ExtClassError, match="expected Class"):
            factory.register_type(1, Point(1, 2))
        assert _snapshot(factory) == ({}, {})

    def test_rejects_non_mapping_options(self, factory: Factory) -> None:
        """Options that are not a mapping are an argument type error."""
        with pytest.raises(ExtClassError, match="expected Hash"):
            factory.register_type(1, Point, ["packer", "unpacker"])
        assert _snapshot(factory) == ({}, {})

    def test_rejects_explicit_none_options(self, factory: Factory) -> None:
        """None given as options is not the two-argument form."""
        with pytest.raises(ExtClassError, match="expected Hash but found NoneType"):
            factory.register_type(1, Point, None)
        assert _snapshot(factory) == ({}, {})

    def test_wrong_number_of_arguments(self, factory: Factory) -> None:
        """One or four positional arguments are an arity error (plain TypeError)."""
        with pytest.raises(TypeError) as excinfo:
            factory.register_type(1)
        assert type(excinfo.value) is TypeError
        with pytest.raises(TypeError) as excinfo:
            factory.register_type(1, Point, {}, {})
        assert type(excinfo.value) is TypeError

    def test_unresolvable_unpacker_installs_nothing(self, factory: Factory) -> None:
        """A class without from_extension_bytes fails and leaves no encode binding behind."""
        with pytest.raises(HandlerResolutionError):
            factory.register_type(4, Opaque)
        assert factory.packer_registry.lookup(Opaque) is None
        assert factory.unpacker_registry.lookup(4) is None

    def test_named_unpacker_resolution_failure(self, factory: Factory) -> None:
        """An unknown unpacker method name fails and installs nothing."""
        with pytest.raises(HandlerResolutionError, match="nope"):
            factory.register_type(4, Label, {"packer": "encode", "unpacker": "nope"})
        assert _snapshot(factory) == ({}, {})

    def test_reregistering_tag_last_write_wins(self, factory: Factory) -> None:
        """Registering a tag again replaces its decode binding."""
        factory.register_type(5, Point)
        factory.register_type(5, Moment)
        decode = factory.unpacker_registry.lookup(5)
        assert decode is not None
        assert decode.unpack == Moment.from_extension_bytes
        assert decode.ext_class is Moment

    def test_decode_only_registration(self, factory: Factory) -> None:
        """packer None with an unpacker installs only the decode binding."""
        factory.register_type(
            6, Point, {"packer": None, "unpacker": Point.from_extension_bytes}
        )
        assert factory.packer_registry.lookup(Point) is None
        assert factory.unpacker_registry.lookup(6) is not None

    def test_encode_only_registration(self, factory: Factory) -> None:
        """Missing unpacker key leaves the tag without a decode binding."""
        factory.register_type(7, Point, {"packer": pack_point_swapped})
        assert factory.packer_registry.lookup(Point) is not None
        assert factory.unpacker_registry.lookup(7) is None

    def test_empty_options_register_nothing(self, factory: Factory) -> None:
        """An empty options mapping selects no handler in either direction."""
        factory.register_type(8, Point, {})
        assert _snapshot(factory) == ({}, {})

    def test_options_with_method_names(self, factory: Factory) -> None:
        """Method names resolve to the instance packer and class-level unpacker."""
        factory.register_type(2, Label, {"packer": "encode", "unpacker": "parse"})
        data = factory.dump(Label("héllo"))
        assert factory.load(data) == Label("héllo")

    def test_options_with_callables(self, factory: Factory) -> None:
        """Callables are stored as given and used for both directions."""
        factory.register_type(
            3, Point, {"packer": pack_point_swapped, "unpacker": unpack_point_swapped}
        )
        encode = factory.packer_registry.lookup(Point)
        assert encode is not None
        assert encode.pack is pack_point_swapped
        assert factory.load(factory.dump(Point(3, 4))) == Point(3, 4)

    def test_returns_none(self, factory: Factory) -> None:
        """register_type returns nothing."""
        assert factory.register_type(1, Point) is None

    def test_negative_tag_pack_binding_logs_warning(
        self, factory: Factory, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A pack handler on a negative tag is installed but flagged."""
        with caplog.at_level(logging.WARNING, logger="extpack.factory.api"):
            factory.register_type(-5, Point)
        assert factory.packer_registry.lookup(Point).tag == -5
        assert "Ext type -5 for Point is in the reserved (negative) range" in caplog.text

    def test_negative_tag_decode_only_is_quiet(
        self, factory: Factory, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Decode-only bindings on negative tags work and need no warning."""
        with caplog.at_level(logging.WARNING, logger="extpack.factory.api"):
            factory.register_type(-5, Point, {"unpacker": "from_extension_bytes"})
            factory.register_type(5, Point)
        assert caplog.records == []

    def test_timestamp_tag_unpacker_runs(self, factory: Factory) -> None:
        """An unpacker bound to -1 receives msgpack timestamp payloads."""
        factory.register_type(-1, Point, {"unpacker": lambda data: ("mine", data)})
        ts = msgpack.Timestamp(1, 0)
        assert factory.load(msgpack.packb(ts)) == ("mine", ts.to_bytes())
        assert factory.load(msgpack.packb({"at": [ts]})) == {"at": [("mine", ts.to_bytes())]}
        assert Factory().load(msgpack.packb(ts)) == ts


class TestRegistration:
    """Tests for Registration and Factory.register."""

    def test_simple_uses_conventional_names(self) -> None:
        """Simple registrations select to_extension_bytes/from_extension_bytes."""
        registration = Registration.simple(1, Point)
        assert registration.packer == "to_extension_bytes"
        assert registration.unpacker == "from_extension_bytes"

    def test_explicit_defaults_to_no_handlers(self) -> None:
        """Explicit registrations select nothing unless told to."""
        registration = Registration.explicit(1, Point)
        assert registration.packer is None
        assert registration.unpacker is None

    def test_register_applies_same_validation(self, factory: Factory) -> None:
        """register() validates exactly like register_type()."""
        with pytest.raises(TagRangeError):
            factory.register(Registration.simple(-200, Point))
        factory.register(Registration.explicit(9, Label, packer="encode", unpacker="parse"))
        assert factory.type_registered(Label)
        assert factory.type_registered(9)


class TestSnapshotIsolation:
    """Packers/unpackers keep the registrations that existed when they were created."""

    def test_packer_created_before_registration_lacks_type(self, factory: Factory) -> None:
        """A packer keeps the encode bindings it was created with."""
        early = factory.packer()
        factory.register_type(1, Point)
        late = factory.packer()

        assert early.ext_registry.lookup(Point) is None
        assert late.ext_registry.lookup(Point) is not None
        with pytest.raises(TypeError):
            early.pack(Point(1, 2))
        assert late.pack(Point(1, 2))

    def test_unpacker_created_before_registration_lacks_tag(self, factory: Factory) -> None:
        """An unpacker keeps the decode bindings it was created with."""
        early = factory.unpacker()
        factory.register_type(1, Point)
        late = factory.unpacker()
        data = factory.dump(Point(5, 6))

        assert late.unpackb(data) == Point(5, 6)
        raw = early.unpackb(data)
        assert raw.code == 1
        assert raw.data == Point(5, 6).to_extension_bytes()

    def test_mutating_one_packer_registry_affects_nothing_else(self, factory: Factory) -> None:
        """Each packer owns its registry copy."""
        factory.register_type(1, Point)
        first = factory.packer()
        second = factory.packer()

        first.ext_registry.put(Label, 2, Label.encode)
        first.ext_registry.put(Point, 3, pack_point_swapped)

        assert second.ext_registry.lookup(Label) is None
        assert second.ext_registry.lookup(Point).tag == 1
        assert factory.packer_registry.lookup(Label) is None
        assert factory.packer_registry.lookup(Point).tag == 1

    def test_clearing_unpacker_registry_keeps_factory(self, factory: Factory) -> None:
        """Clearing an unpacker's registry does not touch the factory."""
        factory.register_type(1, Point)
        uk = factory.unpacker()
        uk.ext_registry.clear()
        assert factory.unpacker_registry.lookup(1) is not None

    def test_instances_outlive_factory(self) -> None:
        """Packers and unpackers keep working after the factory is gone."""
        factory = Factory()
        factory.register_type(1, Point)
        pk = factory.packer()
        uk = factory.unpacker()
        del factory
        assert uk.unpackb(pk.pack(Point(7, 8))) == Point(7, 8)

    def test_registry_properties_are_copies(self, factory: Factory) -> None:
        """Writes through the registry properties are not seen by the factory."""
        factory.packer_registry.put(Point, 1, pack_point_swapped)
        factory.unpacker_registry.put(1, unpack_point_swapped)
        assert _snapshot(factory) == ({}, {})


class TestTimeRoundTrip:
    """Moment registered on ext type 0 with the conventional methods."""

    def test_round_trip(self, factory: Factory) -> None:
        """Moment values survive packing at the top level and nested."""
        factory.register_type(0, Moment)
        pk = factory.packer()
        moment = Moment(1_700_000_000, 123_456_789)
        data = pk.pack({"at": moment, "items": [moment, 1]})

        uk = factory.unpacker()
        uk.feed(data)
        decoded = uk.unpack()
        assert decoded == {"at": moment, "items": [moment, 1]}

    def test_payload_is_tagged_zero(self, factory: Factory) -> None:
        """Moment is framed as ext type 0 with its own payload."""
        factory.register_type(0, Moment)
        data = factory.dump(Moment(1, 2))
        raw = Factory().load(data)
        assert raw.code == 0
        assert raw.data == Moment(1, 2).to_extension_bytes()


class TestIntrospection:
    """Tests for registered_types and type_registered."""

    def test_registered_types_both(self, factory: Factory) -> None:
        """Entries are sorted by tag and carry both handlers."""
        factory.register_type(1, Point)
        factory.register_type(0, Moment)
        entries = factory.registered_types()
        assert [e["type"] for e in entries] == [0, 1]
        assert entries[1]["class"] is Point
        assert entries[1]["packer"] is not None
        assert entries[1]["unpacker"] == Point.from_extension_bytes

    def test_registered_types_single_direction(self, factory: Factory) -> None:
        """Single-direction selectors drop the other key."""
        factory.register_type(1, Point, {"packer": pack_point_swapped})
        factory.register_type(2, Label, {"unpacker": "parse"})

        packers = factory.registered_types("packer")
        assert packers == [{"type": 1, "class": Point, "packer": pack_point_swapped}]

        unpackers = factory.registered_types("unpacker")
        assert unpackers == [{"type": 2, "class": Label, "unpacker": Label.parse}]

        both = factory.registered_types("both")
        assert [(e["type"], e["packer"] is None, e["unpacker"] is None) for e in both] == [
            (1, False, True),
            (2, True, False),
        ]

    def test_registered_types_rejects_unknown_selector(self, factory: Factory) -> None:
        """Only packer, unpacker and both are accepted."""
        with pytest.raises(ValueError, match="selector"):
            factory.registered_types("encoder")

    def test_type_registered(self, factory: Factory) -> None:
        """Classes and tags are looked up per direction."""
        factory.register_type(2, Label, {"unpacker": "parse"})
        assert factory.type_registered(Label)
        assert factory.type_registered(2)
        assert factory.type_registered(2, "unpacker")
        assert not factory.type_registered(2, "packer")
        assert not factory.type_registered(Point)
        assert not factory.type_registered(3)

    def test_type_registered_rejects_other_values(self, factory: Factory) -> None:
        """Anything other than a class or a tag is an argument type error."""
        with pytest.raises(ExtClassError):
            factory.type_registered("Label")


class TestPackerOptions:
    """Options given to packer()/unpacker() reach msgpack."""

    def test_packer_options_forwarded(self, factory: Factory) -> None:
        """use_single_float reaches msgpack.Packer."""
        pk = factory.packer(use_single_float=True)
        assert len(pk.pack(1.5)) == 5

    def test_unpacker_options_forwarded(self, factory: Factory) -> None:
        """use_list reaches msgpack.Unpacker."""
        data = factory.dump([1, 2])
        assert factory.unpacker(use_list=False).unpackb(data) == (1, 2)


class TestConcurrentRegistration:
    """Registry copies taken while another thread keeps registering types."""

    def test_copies_never_hold_half_a_registration(self) -> None:
        """Every copy holds both bindings of a registration or neither."""
        failures: list[str] = []

        for _ in range(10):
            factory = Factory()
            classes = [type(f"Point{tag}", (Point,), {}) for tag in range(128)]
            done = threading.Event()

            def register() -> None:
                try:
                    for tag, cls in enumerate(classes):
                        factory.register_type(tag, cls)
                finally:
                    done.set()

            def copy_until_done() -> None:
                try:
                    while not done.is_set():
                        before = {b.tag for b in factory.packer().ext_registry}
                        decode = {b.tag for b in factory.unpacker().ext_registry}
                        after = {b.tag for b in factory.packer().ext_registry}
                        if not before <= decode <= after:
                            failures.append(f"{sorted(decode ^ before)}")
                        for entry in factory.registered_types():
                            if entry["packer"] is None or entry["unpacker"] is None:
                                failures.append(f"half registered: {entry['type']}")
                except Exception as e:
                    failures.append(repr(e))

            readers = [threading.Thread(target=copy_until_done) for _ in range(3)]
            writer = threading.Thread(target=register)
            for thread in readers:
                thread.start()
            writer.start()
            writer.join()
            for thread in readers:
                thread.join()

            assert len(factory.registered_types()) == 128

        assert failures == []
